from __future__ import annotations

import hmac
import logging
from typing import Any, Callable, Optional

from starlette.concurrency import run_in_threadpool
from starlette.requests import HTTPConnection
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from ._common import Authorizer, Decision, Outcome, RequestInfo

logger = logging.getLogger("osrbac.adapters.starlette")

_DETAILS = {
    Outcome.UNAUTHORIZED: "Unauthorized",
    Outcome.FORBIDDEN: "Forbidden",
    Outcome.INTERNAL_ERROR: "Error enforcing policy",
}


def request_info(conn: HTTPConnection) -> RequestInfo:
    return RequestInfo(
        method=conn.scope.get("method", "GET"),
        path=conn.url.path,
        headers=conn.headers,
        query=conn.query_params,
    )


def deny_response(decision: Decision, add_headers: bool = False) -> JSONResponse:
    headers: dict[str, str] = {}
    if decision.outcome is Outcome.UNAUTHORIZED:
        headers["WWW-Authenticate"] = 'Basic realm="osrbac"'
    if add_headers and decision.reason:
        headers["X-OSRBAC-Reason"] = str(decision.reason)
    return JSONResponse(
        {"detail": _DETAILS[decision.outcome]},
        status_code=decision.status_code,
        headers=headers,
    )


class EnforcerMiddleware:
    """ASGI middleware that guards every HTTP request behind the policy.

    Non-HTTP scopes (lifespan, websocket) pass through untouched. The
    authenticated identity is stored in ``scope["state"]["identity"]`` for
    the wrapped handler.
    """

    def __init__(self, app: ASGIApp, *, authorizer: Authorizer, add_headers: bool = False) -> None:
        self.app = app
        self.authorizer = authorizer
        self.add_headers = add_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        conn = HTTPConnection(scope)
        decision = await run_in_threadpool(self.authorizer.authorize, request_info(conn))
        if decision.allowed:
            scope.setdefault("state", {})["identity"] = decision.identity
            await self.app(scope, receive, send)
            return

        logger.info(
            "OSRBAC: %s %s -> %s (%s)",
            scope.get("method"),
            conn.url.path,
            decision.outcome.value,
            decision.identity or "anonymous",
        )
        res = deny_response(decision, self.add_headers)
        await res(scope, receive, send)


def require_access(authorizer: Authorizer, add_headers: bool = False) -> Callable[..., Any]:
    """
    Starlette adapter that works both:
      - as a decorator on an endpoint (returns an async endpoint)
      - as a dependency-like callable: ``deny = await require_access(...)(request)``
    """

    async def _dependency(request: Any) -> Optional[JSONResponse]:
        decision = await run_in_threadpool(authorizer.authorize, request_info(request))
        if decision.allowed:
            return None
        return deny_response(decision, add_headers)

    def _decorator_or_dependency(arg: Any):
        if callable(arg):
            handler = arg
            is_async = bool(getattr(handler, "__code__", None) and handler.__code__.co_flags & 0x80)

            async def _endpoint(request: Any):
                deny = await _dependency(request)
                if deny is not None:
                    return deny
                if is_async:
                    return await handler(request)
                return await run_in_threadpool(handler, request)

            return _endpoint

        return _dependency(arg)

    return _decorator_or_dependency


class AdminTokenMiddleware:
    """Shared-secret gate for administrative routes.

    With ``token`` set, an HTTP request must carry it in ``header`` or gets a
    401. With ``token=None`` every request passes.
    """

    def __init__(self, app: ASGIApp, *, token: Optional[str], header: str = "X-Admin-Token") -> None:
        self.app = app
        self.token = token
        self.header = header

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http" or self.token is None:
            await self.app(scope, receive, send)
            return

        presented = HTTPConnection(scope).headers.get(self.header) or ""
        if hmac.compare_digest(presented.encode("utf-8"), self.token.encode("utf-8")):
            await self.app(scope, receive, send)
            return

        logger.warning("OSRBAC: rejected admin request %s %s", scope.get("method"), scope.get("path"))
        res = JSONResponse({"detail": "Unauthorized"}, status_code=401)
        await res(scope, receive, send)
