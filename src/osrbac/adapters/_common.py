"""
Request extraction and the enforcement decision, independent of any web framework.

A request ends in exactly one :class:`Outcome`:

- ``UNAUTHORIZED``: no usable Basic credentials (or the verifier rejected them)
- ``FORBIDDEN``: the engine denied every request tuple
- ``INTERNAL_ERROR``: the engine raised; nothing is allowed on an error
- ``ALLOWED``: one request tuple was allowed
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from ..core.ports import AcceptAllCredentials, CredentialVerifier
from ..exceptions import Unauthorized

logger = logging.getLogger("osrbac.adapters")

EnforceTuple = Tuple[str, ...]

ROLE_HEADER = "X-User-Role"
RESOURCE_PARAM = "resource"
ADMIN_PERMISSION = "admin"

METHOD_PERMISSIONS = {
    "GET": "viewer",
    "POST": "editor",
    "PUT": "editor",
    "PATCH": "editor",
    "DELETE": "delete",
}
UNKNOWN_PERMISSION = "unknown"


class Outcome(str, Enum):
    ALLOWED = "allowed"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    INTERNAL_ERROR = "error"

    @property
    def status_code(self) -> int:
        return _STATUS[self]


_STATUS = {
    Outcome.ALLOWED: 200,
    Outcome.UNAUTHORIZED: 401,
    Outcome.FORBIDDEN: 403,
    Outcome.INTERNAL_ERROR: 500,
}


@dataclass(frozen=True)
class RequestInfo:
    """The parts of an HTTP request the extractors look at.

    ``headers`` must be case-insensitive (Starlette's ``Headers`` is).
    """

    method: str
    path: str
    headers: Mapping[str, str]
    query: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    identity: Optional[str] = None
    matched: Optional[EnforceTuple] = None
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOWED

    @property
    def status_code(self) -> int:
        return self.outcome.status_code


def extract_basic_credentials(authorization: Optional[str]) -> Tuple[str, str]:
    """Split a Basic ``Authorization`` header into (identity, secret)."""
    if not authorization or not authorization.startswith("Basic "):
        raise Unauthorized("no basic auth header")
    encoded = authorization[len("Basic "):]
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise Unauthorized("malformed basic credentials") from e
    identity, sep, secret = decoded.partition(":")
    if not sep:
        raise Unauthorized("invalid credentials")
    return identity, secret


def first_path_segment(path: str) -> str:
    """``/reports/2024/q1`` -> ``/reports``; ``/`` -> ``/``."""
    parts = path.split("/", 2)
    return "/" + (parts[1] if len(parts) > 1 else "")


def permission_for_method(method: str) -> str:
    return METHOD_PERMISSIONS.get(method.upper(), UNKNOWN_PERMISSION)


class HeaderRoleExtractor:
    """Role from a trusted header, resource from the first path segment, action = HTTP method.

    One engine call: ``enforce(identity, role, resource, method)``.
    """

    name = "header_role"

    def __init__(self, role_header: str = ROLE_HEADER) -> None:
        self.role_header = role_header

    def requests(self, identity: str, request: RequestInfo) -> Sequence[EnforceTuple]:
        role = request.headers.get(self.role_header) or ""
        return [(identity, role, first_path_segment(request.path), request.method)]


class QueryAdminExtractor:
    """Resource from a query parameter, action from the HTTP method's permission.

    Two engine calls in order: the admin permission on the resource, which
    allows anything, then the permission mapped from the method.
    """

    name = "query_admin"

    def __init__(self, resource_param: str = RESOURCE_PARAM) -> None:
        self.resource_param = resource_param

    def requests(self, identity: str, request: RequestInfo) -> Sequence[EnforceTuple]:
        resource = request.query.get(self.resource_param) or ""
        return [
            (identity, resource, ADMIN_PERMISSION),
            (identity, resource, permission_for_method(request.method)),
        ]


EXTRACTORS: dict[str, Callable[[], Any]] = {
    HeaderRoleExtractor.name: HeaderRoleExtractor,
    QueryAdminExtractor.name: QueryAdminExtractor,
}


def build_extractor(name: str) -> Any:
    try:
        return EXTRACTORS[name]()
    except KeyError:
        raise ValueError(
            f"unknown extraction strategy {name!r}; expected one of {sorted(EXTRACTORS)}"
        ) from None


class Authorizer:
    """Runs the extraction and decision steps for one request."""

    def __init__(
        self,
        guard: Any,
        extractor: Any | None = None,
        *,
        verifier: CredentialVerifier | None = None,
        metrics: Any | None = None,
    ) -> None:
        self.guard = guard
        self.extractor = extractor if extractor is not None else HeaderRoleExtractor()
        self.verifier = verifier if verifier is not None else AcceptAllCredentials()
        self.metrics = metrics

    def authorize(self, request: RequestInfo) -> Decision:
        decision = self._decide(request)
        self._count(decision.outcome)
        return decision

    def _decide(self, request: RequestInfo) -> Decision:
        try:
            identity, secret = extract_basic_credentials(request.headers.get("Authorization"))
        except Unauthorized as e:
            return Decision(Outcome.UNAUTHORIZED, reason=str(e))

        if not self.verifier.verify(identity, secret):
            return Decision(Outcome.UNAUTHORIZED, identity=identity, reason="invalid credentials")

        for rvals in self.extractor.requests(identity, request):
            try:
                allowed = self.guard.enforce(*rvals)
            except Exception as e:
                logger.exception("OSRBAC: error enforcing policy for %s", rvals, exc_info=e)
                return Decision(
                    Outcome.INTERNAL_ERROR, identity=identity, reason="error enforcing policy"
                )
            if allowed:
                return Decision(Outcome.ALLOWED, identity=identity, matched=tuple(rvals))

        return Decision(Outcome.FORBIDDEN, identity=identity, reason="denied")

    def _count(self, outcome: Outcome) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.inc("osrbac_decisions_total", {"decision": outcome.value})
        except Exception:  # pragma: no cover
            logger.debug("metrics inc failed", exc_info=True)
