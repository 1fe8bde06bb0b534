"""Domain models for tracked activities and breaks."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from .errors import InvalidArgument, InvalidBreakEnd, InvalidInterval
from .periods import TimePeriod


class StateKind(str, Enum):
    APPLICATION_STARTED = "application-started"
    FOCUS_ON_APPLICATION = "focus-on-application"
    SYSTEM_LOCKED = "system-locked"
    MOUSE_MOVED = "mouse-moved"


@dataclass(frozen=True, slots=True)
class SystemState:
    """An already-normalized observation of what the system is doing."""

    kind: StateKind
    description: str = ""

    @classmethod
    def application_started(cls, application_name: str) -> "SystemState":
        return cls(StateKind.APPLICATION_STARTED, application_name)

    @classmethod
    def focus_on_application(cls, window_title: str) -> "SystemState":
        return cls(StateKind.FOCUS_ON_APPLICATION, window_title)

    @classmethod
    def system_locked(cls) -> "SystemState":
        return cls(StateKind.SYSTEM_LOCKED, "System locked")

    @classmethod
    def mouse_moved(cls, x_position: int, y_position: int) -> "SystemState":
        return cls(StateKind.MOUSE_MOVED, f"Mouse position: {x_position}x{y_position}")

    @property
    def is_system_locked(self) -> bool:
        return self.kind is StateKind.SYSTEM_LOCKED


@dataclass(frozen=True, slots=True)
class EndedActivity:
    """A contiguous block of time spent in a single system state."""

    started_at: datetime
    ended_at: datetime
    system_state: SystemState
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self) -> None:
        if self.system_state is None:
            raise InvalidArgument("system_state is required")
        if self.ended_at < self.started_at:
            raise InvalidInterval("Activity cannot end before it started")

    @property
    def duration(self) -> timedelta:
        return self.ended_at - self.started_at

    @property
    def description(self) -> str:
        return self.system_state.description

    @property
    def period(self) -> TimePeriod:
        return TimePeriod(self.started_at, self.ended_at)


@dataclass(frozen=True, slots=True)
class StartedActivity:
    started_at: datetime
    system_state: SystemState
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def end(self, ended_at: datetime) -> EndedActivity:
        return EndedActivity(
            started_at=self.started_at,
            ended_at=ended_at,
            system_state=self.system_state,
            id=self.id,
        )

    def duration_until(self, now: datetime) -> timedelta:
        return now - self.started_at


@dataclass(frozen=True, slots=True)
class InstantActivity:
    """A point-in-time signal such as a mouse movement."""

    occurred_at: datetime
    system_state: SystemState
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class EndedBreak:
    id: uuid.UUID
    started_at: datetime
    ended_at: datetime
    description: str
    # Set once the user voided the break; the record is kept for audit.
    revoked_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.ended_at < self.started_at:
            raise InvalidBreakEnd("Break cannot end before it started")

    @property
    def break_duration(self) -> timedelta:
        return self.ended_at - self.started_at

    @property
    def period(self) -> TimePeriod:
        return TimePeriod(self.started_at, self.ended_at)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def revoke(self, revoked_at: datetime) -> "RevokedBreak":
        return RevokedBreak(ended_break=self.mark_as_revoked(revoked_at), revoked_at=revoked_at)

    def mark_as_revoked(self, revoked_at: datetime) -> "EndedBreak":
        return replace(self, revoked_at=revoked_at)

    @classmethod
    def create_sample(
        cls, started_at: datetime, ended_at: datetime, description: str = "Sample Break"
    ) -> "EndedBreak":
        return cls(uuid.uuid4(), started_at, ended_at, description)


@dataclass(frozen=True, slots=True)
class RevokedBreak:
    ended_break: EndedBreak
    revoked_at: datetime

    @property
    def break_id(self) -> uuid.UUID:
        return self.ended_break.id


@dataclass(frozen=True, slots=True)
class StartedBreak:
    started_at: datetime
    description: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def end_break(self, ended_at: datetime) -> EndedBreak:
        """Close the break, keeping its id so later revocation can find it."""
        if ended_at < self.started_at:
            raise InvalidBreakEnd("Break cannot end before it started")
        if ended_at.date() != self.started_at.date():
            raise InvalidBreakEnd("Break cannot end on a different day")
        return EndedBreak(self.id, self.started_at, ended_at, self.description)


@dataclass(frozen=True, slots=True)
class ActivityToProcess:
    """A signal waiting in the break detector's queue."""

    timestamp: datetime
    system_state: SystemState
    occurrence_id: uuid.UUID

    def __post_init__(self) -> None:
        if self.system_state is None:
            raise InvalidArgument("system_state is required")
