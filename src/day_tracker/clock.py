"""Time source abstraction so tests can control "now"."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Local wall-clock time, matching the naive timestamps stored on disk."""

    def now(self) -> datetime:
        return datetime.now()
