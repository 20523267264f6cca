"""
Starlette service around the guard.

Routes:
  POST   /resource                   (admin)   make ``user`` admin of ``resource``
  POST   /resource/{resource}/assign (admin)   give ``user`` ``role`` on ``resource``
  POST   /policies/reload            (admin)   reload policies now
  GET    /health                     (open)
  GET    /metrics                    (open, when prometheus-client is installed)
  GET    /resource/view              (guarded)
  POST   /resource/edit              (guarded)
  DELETE /resource/delete            (guarded)

Admin writes reach the store immediately; guarded routes see them after the
next reload.

"admin" routes require the ``X-Admin-Token`` header when ``OSRBAC_ADMIN_TOKEN``
is set and are open otherwise. Reloads never overlap; a request arriving while
one runs gets a 500 without touching the store.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, AsyncIterator, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .adapters._common import Authorizer, build_extractor
from .adapters.asgi_logging import TraceIdMiddleware
from .adapters.starlette import AdminTokenMiddleware, EnforcerMiddleware
from .config import Settings
from .core.guard import PolicyGuard
from .core.ports import CredentialVerifier
from .exceptions import InvalidRule, StoreUnavailable
from .reloader import PolicyRefresher
from .store.opensearch_store import OpenSearchAdapter

logger = logging.getLogger("osrbac.app")

try:
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # type: ignore
except Exception:  # pragma: no cover
    CONTENT_TYPE_LATEST = generate_latest = None  # type: ignore


async def _form_fields(request: Request, *names: str) -> dict[str, str]:
    form = await request.form()
    values = {}
    for name in names:
        value = form.get(name)
        if not isinstance(value, str) or not value:
            raise InvalidRule(f"missing form field {name!r}")
        values[name] = value
    return values


class PolicyService:
    """Wires adapter, guard, refresher and authorizer into one app."""

    def __init__(
        self,
        settings: Settings,
        *,
        adapter: Any | None = None,
        metrics: Any | None = None,
        verifier: Optional[CredentialVerifier] = None,
    ) -> None:
        self.settings = settings
        self.adapter = (
            adapter
            if adapter is not None
            else OpenSearchAdapter.from_settings(settings, create_index=False)
        )
        self.metrics = metrics
        self.guard = PolicyGuard(
            self.adapter, engine=settings.extraction, model_path=settings.model_path
        )
        self.refresher = PolicyRefresher(
            self.guard, interval=settings.refresh_interval, metrics=metrics
        )
        self.authorizer = Authorizer(
            self.guard,
            build_extractor(settings.extraction),
            verifier=verifier,
            metrics=metrics,
        )

    # --------------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------------- #

    def startup(self) -> None:
        if self.settings.admin_token is None:
            logger.warning("OSRBAC: OSRBAC_ADMIN_TOKEN is not set, admin routes are open")
        self.adapter.ensure_index()
        count = self.guard.reload()
        logger.info("OSRBAC: initial policy load finished (%d rules)", count)
        self.refresher.start()

    def shutdown(self) -> None:
        self.refresher.stop()

    @contextlib.asynccontextmanager
    async def lifespan(self, app: Starlette) -> AsyncIterator[None]:
        await run_in_threadpool(self.startup)
        try:
            yield
        finally:
            await run_in_threadpool(self.shutdown)

    # --------------------------------------------------------------------- #
    # Admin endpoints
    # --------------------------------------------------------------------- #

    async def _grant(self, user: str, resource: str, role: str, failure: str) -> Optional[JSONResponse]:
        try:
            await run_in_threadpool(self.guard.add_policy, user, resource, role)
        except InvalidRule as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        except StoreUnavailable as e:
            logger.error("OSRBAC: %s: %s", failure, e)
            return JSONResponse({"error": failure}, status_code=500)
        return None

    async def create_resource(self, request: Request) -> JSONResponse:
        try:
            fields = await _form_fields(request, "resource", "user")
        except InvalidRule as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        failed = await self._grant(
            fields["user"], fields["resource"], "admin", "Failed to assign admin role"
        )
        if failed is not None:
            return failed
        return JSONResponse({"message": "Resource created and admin role assigned"})

    async def assign_role(self, request: Request) -> JSONResponse:
        resource = request.path_params["resource"]
        try:
            fields = await _form_fields(request, "user", "role")
        except InvalidRule as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        failed = await self._grant(fields["user"], resource, fields["role"], "Failed to assign role")
        if failed is not None:
            return failed
        return JSONResponse({"message": "Role assigned successfully"})

    async def reload(self, request: Request) -> JSONResponse:
        count = await run_in_threadpool(self.refresher.refresh)
        if count is None:
            return JSONResponse({"error": "Failed to reload policies"}, status_code=500)
        return JSONResponse({"message": "Policies reloaded", "rules": count})

    async def health(self, request: Request) -> JSONResponse:
        err = self.refresher.last_error
        return JSONResponse(
            {
                "status": "ok" if err is None else "degraded",
                "rules": self.guard.rule_count,
                "loaded_at": self.guard.loaded_at,
                "last_error": str(err) if err is not None else None,
            }
        )

    async def metrics_endpoint(self, request: Request) -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # --------------------------------------------------------------------- #
    # Guarded sample endpoints
    # --------------------------------------------------------------------- #

    async def view(self, request: Request) -> JSONResponse:
        return JSONResponse({"message": "Resource viewed"})

    async def edit(self, request: Request) -> JSONResponse:
        return JSONResponse({"message": "Resource edited"})

    async def delete(self, request: Request) -> JSONResponse:
        return JSONResponse({"message": "Resource deleted"})

    # --------------------------------------------------------------------- #

    def routes(self) -> list[Route]:
        guarded = [Middleware(EnforcerMiddleware, authorizer=self.authorizer)]
        token = self.settings.admin_token
        admin = [
            Middleware(
                AdminTokenMiddleware,
                token=token.get_secret_value() if token is not None else None,
            )
        ]
        routes = [
            Route("/health", self.health, methods=["GET"]),
            Route("/policies/reload", self.reload, methods=["POST"], middleware=admin),
            Route("/resource", self.create_resource, methods=["POST"], middleware=admin),
            Route("/resource/view", self.view, methods=["GET"], middleware=guarded),
            Route("/resource/edit", self.edit, methods=["POST"], middleware=guarded),
            Route("/resource/delete", self.delete, methods=["DELETE"], middleware=guarded),
            Route(
                "/resource/{resource}/assign", self.assign_role, methods=["POST"], middleware=admin
            ),
        ]
        if generate_latest is not None:
            routes.append(Route("/metrics", self.metrics_endpoint, methods=["GET"]))
        return routes


def create_app(
    settings: Settings | None = None,
    *,
    adapter: Any | None = None,
    metrics: Any | None = None,
    verifier: Optional[CredentialVerifier] = None,
) -> Starlette:
    settings = settings if settings is not None else Settings.from_env()
    service = PolicyService(settings, adapter=adapter, metrics=metrics, verifier=verifier)
    app = Starlette(
        routes=service.routes(),
        middleware=[Middleware(TraceIdMiddleware)],
        lifespan=service.lifespan,
    )
    app.state.service = service
    return app
