"""Threading-based tick backend.

┌──────────────────────────────────────────────────────────────────────┐
│  ThreadTickBackend                                                   │
│                                                                      │
│   start(tick, interval, run_immediately)                             │
│      │                                                               │
│      ▼                                                               │
│   ┌──────────────────────────────────────────────────────────┐       │
│   │  Daemon Thread                                           │       │
│   │                                                          │       │
│   │   if run_immediately: tick()                             │       │
│   │   while not stop_event.wait(interval):                   │       │
│   │       tick_count += 1                                    │       │
│   │       tick()                                             │       │
│   └──────────────────────────────────────────────────────────┘       │
│                                                                      │
│   stop()  → stop_event.set(); thread.join(timeout)                   │
└──────────────────────────────────────────────────────────────────────┘

The backend only decides WHEN a tick happens. What a tick does lives in
``SchedulerService``. A tick that raises is logged and the loop continues.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from dashspine.core.logging import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[], None]


class ThreadTickBackend:
    """Calls a tick callback from a daemon thread at a fixed interval.

    Example:
        >>> backend = ThreadTickBackend()
        >>> backend.start(lambda: print("tick"), interval_seconds=5.0)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, join_timeout: float = 5.0) -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 300.0
        self._join_timeout = join_timeout
        self._started = False
        self._lock = threading.Lock()

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 300.0,
        *,
        run_immediately: bool = True,
    ) -> None:
        if self._started:
            logger.warning("backend_already_started", backend=self.name)
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _run_tick() -> None:
            with self._lock:
                self._tick_count += 1
                self._last_tick = datetime.now(UTC)
            try:
                tick_callback()
            except Exception as e:
                logger.exception("tick_failed", error=str(e))

        def _loop() -> None:
            logger.info("backend_started", backend=self.name, interval_seconds=interval_seconds)
            if run_immediately and not self._stop_event.is_set():
                _run_tick()
            while not self._stop_event.wait(interval_seconds):
                _run_tick()
            logger.info("backend_stopped", backend=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name="dashspine-scheduler")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop; waits for the current tick up to the join timeout."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("scheduler_thread_still_running")

        self._started = False

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the backend thread exits; returns True if it did."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self.is_running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "interval_seconds": self._interval,
        }

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick


__all__ = ["ThreadTickBackend", "TickCallback"]
