from ._common import (
    Authorizer,
    Decision,
    HeaderRoleExtractor,
    Outcome,
    QueryAdminExtractor,
    RequestInfo,
    build_extractor,
    extract_basic_credentials,
)

__all__ = [
    "Authorizer",
    "Decision",
    "HeaderRoleExtractor",
    "Outcome",
    "QueryAdminExtractor",
    "RequestInfo",
    "build_extractor",
    "extract_basic_credentials",
]
