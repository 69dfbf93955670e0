"""Run-level metrics and terminal exit reasons."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional


class ExitReason(IntEnum):
    """Terminal state of a run; the value is the process exit code."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    SAFETY_REFUSAL = 2
    MAX_ITERATIONS_REACHED = 3
    STUCK = 4
    INTERRUPTED = 130

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_DESCRIPTIONS = {
    ExitReason.SUCCESS: "Complete (no changes)",
    ExitReason.GENERAL_ERROR: "Error",
    ExitReason.SAFETY_REFUSAL: "Safety refusal",
    ExitReason.MAX_ITERATIONS_REACHED: "Max iterations reached",
    ExitReason.STUCK: "Stuck (no commits)",
    ExitReason.INTERRUPTED: "Interrupted by user",
}


@dataclass
class Metrics:
    """Counters accumulated over one ``run`` invocation."""

    iterations: int = 0
    commits: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    exit_reason: str = ""
    _started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    @property
    def duration(self) -> float:
        return time.monotonic() - self._started_monotonic

    def finish(self, reason: ExitReason) -> ExitReason:
        self.exit_reason = reason.description
        return reason


def format_duration(seconds: Optional[float]) -> str:
    """Render a duration as ``42s``, ``3m 7s`` or ``1h 2m 3s``."""

    total = max(0.0, float(seconds or 0.0))
    if total < 60:
        return f"{total:.0f}s"
    whole = int(total)
    hours, remainder = divmod(whole, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours == 0:
        return f"{minutes}m {secs}s"
    return f"{hours}h {minutes}m {secs}s"


__all__ = ["ExitReason", "Metrics", "format_duration"]
