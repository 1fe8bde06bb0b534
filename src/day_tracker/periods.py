"""Closed time interval used by the duration algebra."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from .errors import InvalidInterval


@dataclass(frozen=True, slots=True, order=True)
class TimePeriod:
    """A closed interval ``[start, end]`` with ``start <= end``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise InvalidInterval(
                f"start ({self.start.isoformat()}) has to be earlier or equal to "
                f"end ({self.end.isoformat()})"
            )

    @classmethod
    def create_from(cls, start: datetime, end: datetime) -> "TimePeriod":
        return cls(start=start, end=end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimePeriod") -> bool:
        # Periods that merely touch do not overlap.
        return self.start < other.end and other.start < self.end

    def overlap_duration(self, other: "TimePeriod") -> timedelta:
        overlap = min(self.end, other.end) - max(self.start, other.start)
        return max(overlap, timedelta(0))
