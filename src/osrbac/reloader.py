from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Optional

from .exceptions import PartialLoad, StoreUnavailable

logger = logging.getLogger("osrbac.reloader")

DEFAULT_INTERVAL = 60.0


class PolicyRefresher:
    """
    Periodic policy reloader.

    Features:
      - Fixed-interval background thread with clean start/stop.
      - Every tick is independent: a failed load is logged and the next tick
        runs on schedule (no backoff).
      - Overlap guard: a tick that fires while a reload is still running is
        skipped instead of stacking another load against the store.
      - Optional jitter to spread instances that started together.

    Notes:
      - The guard keeps its previous snapshot when a reload fails.
      - ``refresh()`` can be called directly for an on-demand reload; it
        honours the same overlap guard.
    """

    def __init__(
        self,
        guard: Any,
        *,
        interval: float = DEFAULT_INTERVAL,
        jitter_ratio: float = 0.0,
        thread_daemon: bool = True,
        metrics: Any | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.guard = guard
        self.interval = float(interval)
        self.jitter_ratio = float(jitter_ratio)
        self.thread_daemon = bool(thread_daemon)
        self.metrics = metrics

        # State
        self._last_reload_at: float | None = None
        self._last_error: Exception | None = None
        self._state_lock = threading.Lock()

        # Held for the whole reload; acquired non-blocking by ticks.
        self._running = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # --------------------------------------------------------------------- #
    # Public API
    # --------------------------------------------------------------------- #

    def refresh(self) -> Optional[int]:
        """
        Perform a single reload.

        Returns:
            The number of installed rules, or None when the reload failed or was
            skipped because another one was in progress.
        """
        if not self._running.acquire(blocking=False):
            logger.warning("OSRBAC: previous policy reload still running, skipping tick")
            self._count("skipped")
            return None

        started = time.perf_counter()
        try:
            count = self.guard.reload()
        except PartialLoad as e:
            self._register_error(e, "OSRBAC: policy reload aborted mid-scroll, keeping previous policies")
            return None
        except StoreUnavailable as e:
            self._register_error(e, "OSRBAC: policy store unavailable, keeping previous policies")
            return None
        except Exception as e:
            self._register_error(e, "OSRBAC: policy reload error")
            return None
        else:
            with self._state_lock:
                self._last_reload_at = time.time()
                self._last_error = None
            self._count("ok")
            logger.info("OSRBAC: policies reloaded successfully (%d rules)", count)
            return count
        finally:
            self._observe(time.perf_counter() - started)
            self._running.release()

    def start(self) -> None:
        """Start the background thread; a second call is a no-op."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="osrbac-refresher", daemon=self.thread_daemon
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to stop and wait for it."""
        if not self._thread:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if not self._thread.is_alive():
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_reload_at(self) -> float | None:
        with self._state_lock:
            return self._last_reload_at

    @property
    def last_error(self) -> Exception | None:
        with self._state_lock:
            return self._last_error

    # --------------------------------------------------------------------- #
    # Internals
    # --------------------------------------------------------------------- #

    def _register_error(self, err: Exception, msg: str) -> None:
        with self._state_lock:
            self._last_error = err
        logger.error("%s: %s", msg, err, exc_info=err)
        self._count("error")

    def _count(self, result: str) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.inc("osrbac_reloads_total", {"result": result})
        except Exception:  # pragma: no cover
            logger.debug("metrics inc failed", exc_info=True)

    def _observe(self, seconds: float) -> None:
        if self.metrics is None:
            return
        observe = getattr(self.metrics, "observe", None)
        if observe is None:
            return
        try:
            observe("osrbac_reload_seconds", seconds)
        except Exception:  # pragma: no cover
            logger.debug("metrics observe failed", exc_info=True)

    def _next_delay(self) -> float:
        if not self.jitter_ratio:
            return self.interval
        jitter = self.interval * self.jitter_ratio * random.uniform(-1.0, 1.0)
        return max(0.1, self.interval + jitter)

    def _run_loop(self) -> None:
        # First tick fires one interval after start, the initial load is the caller's job.
        while not self._stop_event.wait(timeout=self._next_delay()):
            logger.info("OSRBAC: reloading policies from the store")
            self.refresh()
