import logging

from osrbac.logging import LOG_FORMAT, configure_logging
from osrbac.logging.context import (
    TraceIdFilter,
    clear_current_trace_id,
    gen_trace_id,
    get_current_trace_id,
    set_current_trace_id,
)


def _record():
    return logging.LogRecord("osrbac.test", logging.INFO, __file__, 1, "msg", None, None)


def test_filter_adds_trace_id():
    f = TraceIdFilter()
    rec = _record()
    assert f.filter(rec)
    assert rec.trace_id == "-"

    token = set_current_trace_id("abc")
    try:
        rec = _record()
        f.filter(rec)
        assert rec.trace_id == "abc"
    finally:
        clear_current_trace_id(token)
    assert get_current_trace_id() is None


def test_gen_trace_id_is_unique_hex():
    a, b = gen_trace_id(), gen_trace_id()
    assert a != b
    int(a, 16)


def test_configure_logging_replaces_its_own_handler():
    logger = logging.getLogger("osrbac")
    before = list(logger.handlers)
    try:
        first = configure_logging("debug")
        second = configure_logging("INFO")
        assert first not in logger.handlers
        assert second in logger.handlers
        assert logger.level == logging.INFO
        assert second.formatter._fmt == LOG_FORMAT
    finally:
        for h in list(logger.handlers):
            if h not in before:
                logger.removeHandler(h)
        logger.setLevel(logging.NOTSET)
