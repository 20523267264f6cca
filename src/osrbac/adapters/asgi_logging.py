from __future__ import annotations

import logging
from typing import Any, MutableMapping

from ..logging.context import clear_current_trace_id, gen_trace_id, set_current_trace_id

logger = logging.getLogger("osrbac.access")


class TraceIdMiddleware:
    """Assigns a request id, logs every hit and echoes the id in the response.

    An incoming ``X-Request-ID`` (configurable) is reused when non-empty.
    """

    def __init__(self, app: Any, header_name: bytes | str = b"x-request-id") -> None:
        self.app = app
        if isinstance(header_name, str):
            header_name = header_name.encode("latin-1")
        self.header_name = header_name.lower()

    async def __call__(self, scope: MutableMapping[str, Any], receive: Any, send: Any) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        trace_id = None
        for key, value in scope.get("headers") or []:
            if key.lower() == self.header_name and value:
                trace_id = value.decode("latin-1")
                break
        if not trace_id:
            trace_id = gen_trace_id()

        token = set_current_trace_id(trace_id)
        logger.info("API hit: %s %s", scope.get("method"), scope.get("path"))

        async def _send(message: MutableMapping[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers = [
                    (k, v) for k, v in message.get("headers") or [] if k.lower() != self.header_name
                ]
                headers.append((self.header_name, trace_id.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, _send)
        finally:
            clear_current_trace_id(token)
