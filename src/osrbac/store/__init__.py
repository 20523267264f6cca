from __future__ import annotations

from .opensearch_store import OpenSearchAdapter, build_filter_query
from .schema import INDEX_MAPPING, PolicyRecord, decode_hit, document_id

__all__ = [
    "INDEX_MAPPING",
    "OpenSearchAdapter",
    "PolicyRecord",
    "build_filter_query",
    "decode_hit",
    "document_id",
]
