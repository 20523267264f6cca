from __future__ import annotations

from typing import Any


class OsrbacError(Exception):
    """Base class for all osrbac errors."""


class Unauthorized(OsrbacError):
    """Missing or malformed credentials."""


class InvalidRule(OsrbacError, ValueError):
    """Administrative input that cannot become a policy record."""


class DocumentParseError(OsrbacError, ValueError):
    """A stored document does not decode into a policy record."""

    def __init__(self, message: str, *, doc_id: str | None = None) -> None:
        super().__init__(message)
        self.doc_id = doc_id


class StoreUnavailable(OsrbacError):
    """Transport failure or error response from the policy store.

    ``info`` carries the store's response body (when there was one) so the
    caller can log what the store actually said.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | str | None = None,
        info: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.info = info

    def __str__(self) -> str:
        base = super().__str__()
        if self.info:
            return f"{base}: {self.info}"
        return base


class IncompatiblePolicy(OsrbacError):
    """Stored rules cannot be placed into the policy model at all."""


class PartialLoad(StoreUnavailable):
    """A bulk load aborted after some pages were already consumed."""

    def __init__(self, message: str, *, loaded: int = 0, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.loaded = loaded


__all__ = [
    "OsrbacError",
    "Unauthorized",
    "InvalidRule",
    "DocumentParseError",
    "StoreUnavailable",
    "PartialLoad",
    "IncompatiblePolicy",
]
