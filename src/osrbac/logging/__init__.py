from __future__ import annotations

import logging

from .context import (
    TraceIdFilter,
    clear_current_trace_id,
    gen_trace_id,
    get_current_trace_id,
    set_current_trace_id,
)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(trace_id)s] %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Handler:
    """Attach a stderr handler with trace ids to the ``osrbac`` logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(TraceIdFilter())

    root = logging.getLogger("osrbac")
    for existing in list(root.handlers):
        if getattr(existing, "_osrbac_handler", False):
            root.removeHandler(existing)
    handler._osrbac_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    return handler


__all__ = [
    "LOG_FORMAT",
    "TraceIdFilter",
    "clear_current_trace_id",
    "configure_logging",
    "gen_trace_id",
    "get_current_trace_id",
    "set_current_trace_id",
]
