"""
Tick schedulers for the architecture simulator.

A scheduler invokes the engine's tick callback at a fixed wall-clock
interval. It never runs two callbacks at once: the threaded scheduler calls
them one after another on a single worker thread, and the manual scheduler
only calls them when a test or headless driver asks it to.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class TickScheduler(ABC):
    """Invokes a callback every ``interval_ms`` until cancelled."""

    @abstractmethod
    def schedule(self, interval_ms: float, callback: TickCallback) -> None:
        """Start invoking ``callback`` every ``interval_ms``.

        Replaces any existing schedule.
        """

    @abstractmethod
    def cancel(self) -> None:
        """Stop invoking the callback. Safe to call when nothing is scheduled."""

    @property
    @abstractmethod
    def is_scheduled(self) -> bool:
        """Whether a callback is currently scheduled."""


class ManualTickScheduler(TickScheduler):
    """Scheduler driven explicitly by the caller.

    Ticks happen only on ``advance``, which makes runs deterministic and
    independent of the wall clock.
    """

    def __init__(self) -> None:
        self.interval_ms: float | None = None
        self._callback: TickCallback | None = None

    def schedule(self, interval_ms: float, callback: TickCallback) -> None:
        self.interval_ms = interval_ms
        self._callback = callback

    def cancel(self) -> None:
        self.interval_ms = None
        self._callback = None

    @property
    def is_scheduled(self) -> bool:
        return self._callback is not None

    def advance(self, ticks: int = 1) -> int:
        """Fire up to ``ticks`` scheduled callbacks.

        Stops early if a callback cancels the schedule (e.g., the run
        completed).

        Returns:
            Number of callbacks fired.
        """
        fired = 0
        for _ in range(ticks):
            if self._callback is None:
                break
            self._callback()
            fired += 1
        return fired

    def __repr__(self) -> str:
        return f"ManualTickScheduler(interval={self.interval_ms})"


class ThreadedTickScheduler(TickScheduler):
    """Wall-clock scheduler running callbacks on a daemon worker thread.

    Each ``schedule`` call starts a fresh worker and retires the previous
    one. A retired worker never starts another callback, though one already
    in progress is allowed to finish.
    """

    def __init__(self, name: str = "archsim-ticks"):
        self.name = name
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None

    def schedule(self, interval_ms: float, callback: TickCallback) -> None:
        if interval_ms <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval_ms}")
        self.cancel()
        stop = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(interval_ms / 1000.0, callback, stop),
            name=self.name,
            daemon=True,
        )
        self._stop = stop
        self._thread = thread
        thread.start()
        logger.debug("Scheduled ticks every %.1fms", interval_ms)

    def cancel(self) -> None:
        if self._stop is not None:
            self._stop.set()
        self._stop = None

    @property
    def is_scheduled(self) -> bool:
        return self._stop is not None

    def join(self, timeout: float | None = None) -> None:
        """Wait for the most recent worker to exit (after ``cancel``)."""
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @staticmethod
    def _run(interval_s: float, callback: TickCallback, stop: threading.Event) -> None:
        while not stop.wait(interval_s):
            try:
                callback()
            except Exception:
                logger.exception("Tick callback raised; stopping the tick loop")
                stop.set()

    def __repr__(self) -> str:
        return f"ThreadedTickScheduler(scheduled={self.is_scheduled})"
