"""Operator interrupt handling for the run loop."""

from __future__ import annotations

import signal
import threading
from typing import Callable, Iterable, Optional

from gumloop.logging import get_logger

__all__ = ["InterruptMonitor"]

logger = get_logger(__name__)

_DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InterruptMonitor:
    """Record interrupt signals so the loop can stop at the next iteration boundary.

    The handler only sets a flag; an agent already running is left to finish.
    Use as a context manager to install handlers and restore the previous ones
    on exit.
    """

    def __init__(
        self,
        signals: Iterable[int] = _DEFAULT_SIGNALS,
        *,
        on_interrupt: Optional[Callable[[], None]] = None,
    ) -> None:
        self._signals = tuple(signals)
        self._on_interrupt = on_interrupt
        self._event = threading.Event()
        self._previous: dict[int, object] = {}

    @property
    def requested(self) -> bool:
        """Non-blocking check for a pending interrupt."""

        return self._event.is_set()

    def request(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        if self._on_interrupt is not None:
            self._on_interrupt()

    def install(self) -> "InterruptMonitor":
        if threading.current_thread() is not threading.main_thread():
            logger.debug("signal handlers can only be installed from the main thread")
            return self
        for signum in self._signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)  # type: ignore[arg-type]
        self._previous.clear()

    def __enter__(self) -> "InterruptMonitor":
        return self.install()

    def __exit__(self, exc_type, exc_value, exc_traceback) -> bool:
        self.restore()
        return False

    def _handle(self, signum: int, frame: object) -> None:
        logger.info("received signal %s; stopping after the current iteration", signum)
        self.request()
