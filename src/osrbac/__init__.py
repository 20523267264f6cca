from __future__ import annotations

__version__ = "0.3.0"

from .adapters._common import (
    Authorizer,
    Decision,
    HeaderRoleExtractor,
    Outcome,
    QueryAdminExtractor,
    RequestInfo,
)
from .core.guard import PolicyGuard
from .core.ports import AcceptAllCredentials, CredentialVerifier
from .exceptions import (
    DocumentParseError,
    IncompatiblePolicy,
    InvalidRule,
    OsrbacError,
    PartialLoad,
    StoreUnavailable,
    Unauthorized,
)
from .reloader import PolicyRefresher
from .store.opensearch_store import OpenSearchAdapter
from .store.schema import PolicyRecord

__all__ = [
    "__version__",
    "AcceptAllCredentials",
    "Authorizer",
    "CredentialVerifier",
    "Decision",
    "DocumentParseError",
    "HeaderRoleExtractor",
    "IncompatiblePolicy",
    "InvalidRule",
    "OpenSearchAdapter",
    "OsrbacError",
    "Outcome",
    "PartialLoad",
    "PolicyGuard",
    "PolicyRecord",
    "PolicyRefresher",
    "QueryAdminExtractor",
    "RequestInfo",
    "StoreUnavailable",
    "Unauthorized",
]
