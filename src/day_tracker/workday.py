"""Per-day time accounting: immutable workday snapshots and their read model."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from .clock import Clock
from .events import BreakEnded, BreakRevoked, EventBus, PeriodicActivityEnded, Publisher, WorkdayUpdated
from .models import EndedActivity, EndedBreak, RevokedBreak

logger = logging.getLogger(__name__)

ZERO = timedelta(0)


@dataclass(frozen=True, slots=True)
class WorkdayDefinition:
    """Configured shape of a workday.

    ``workday_duration`` includes both active work and breaks.
    """

    workday_duration: timedelta
    allowed_break_duration: timedelta

    @classmethod
    def create_default(cls) -> "WorkdayDefinition":
        return cls(timedelta(hours=8), timedelta(minutes=50))

    @property
    def active_work_target(self) -> timedelta:
        return self.workday_duration - self.allowed_break_duration


@dataclass(frozen=True, slots=True)
class Workday:
    """Immutable snapshot of one day's time accounting.

    Only the raw accumulators are stored; every public metric is derived from
    them and clamped at zero. Folding an occurrence returns a new snapshot,
    and revoking a break subtracts exactly what including it added.
    Occurrence ids are remembered so that re-applying the same activity or
    break is a no-op.
    """

    date: date
    workday_definition: WorkdayDefinition
    raw_activity_time: timedelta = ZERO
    raw_break_time: timedelta = ZERO
    activity_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    break_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    revoked_break_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    @classmethod
    def create_for_date(cls, day: date, definition: WorkdayDefinition) -> "Workday":
        return cls(date=day, workday_definition=definition)

    @classmethod
    def create_empty(cls, day: date) -> "Workday":
        return cls.create_for_date(day, WorkdayDefinition.create_default())

    @classmethod
    def create_based_on(
        cls,
        definition: WorkdayDefinition,
        ended_activities: Iterable[EndedActivity],
        ended_breaks: Iterable[EndedBreak],
        day: Optional[date] = None,
    ) -> "Workday":
        workday = cls.create_for_date(day or date.today(), definition)
        for activity in ended_activities:
            workday = workday.include_activity(activity)
        for ended_break in ended_breaks:
            workday = workday.include_break(ended_break)
        return workday

    # -- transitions -------------------------------------------------------

    def include_activity(self, activity: EndedActivity) -> "Workday":
        if activity.id in self.activity_ids:
            return self
        return replace(
            self,
            raw_activity_time=self.raw_activity_time + activity.duration,
            activity_ids=self.activity_ids | {activity.id},
        )

    def include_break(self, ended_break: EndedBreak) -> "Workday":
        if ended_break.id in self.break_ids:
            return self
        return replace(
            self,
            raw_break_time=self.raw_break_time + ended_break.break_duration,
            break_ids=self.break_ids | {ended_break.id},
        )

    def include_revoked_break(self, revoked_break: RevokedBreak) -> "Workday":
        break_id = revoked_break.break_id
        if break_id not in self.break_ids or break_id in self.revoked_break_ids:
            return self
        return replace(
            self,
            raw_break_time=self.raw_break_time - revoked_break.ended_break.break_duration,
            revoked_break_ids=self.revoked_break_ids | {break_id},
        )

    def include(self, occurrence: Any) -> "Workday":
        """Fold any supported occurrence into a new snapshot."""
        if isinstance(occurrence, EndedActivity):
            return self.include_activity(occurrence)
        if isinstance(occurrence, EndedBreak):
            return self.include_break(occurrence)
        if isinstance(occurrence, RevokedBreak):
            return self.include_revoked_break(occurrence)
        raise TypeError(f"Cannot include {type(occurrence).__name__} in a workday")

    # -- derived metrics ---------------------------------------------------

    @property
    def time_of_all_activities(self) -> timedelta:
        return max(self.raw_activity_time, ZERO)

    @property
    def time_of_all_breaks(self) -> timedelta:
        return max(self.raw_break_time, ZERO)

    @property
    def time_already_actively_worked(self) -> timedelta:
        return max(self.raw_activity_time - self.raw_break_time, ZERO)

    @property
    def valid_break_time_used(self) -> timedelta:
        return min(self.time_of_all_breaks, self.workday_definition.allowed_break_duration)

    @property
    def break_time_left(self) -> timedelta:
        return max(self.workday_definition.allowed_break_duration - self.time_of_all_breaks, ZERO)

    @property
    def time_left_to_work_actively(self) -> timedelta:
        remaining = self.workday_definition.active_work_target - self.time_already_actively_worked
        return max(remaining, ZERO)

    @property
    def overhours_time(self) -> timedelta:
        excess = self.time_already_actively_worked - self.workday_definition.active_work_target
        return max(excess, ZERO)

    @property
    def overall_time_left_to_work(self) -> timedelta:
        remaining = (
            self.workday_definition.workday_duration
            - self.time_already_actively_worked
            - self.valid_break_time_used
        )
        return max(remaining, ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "workday_seconds": self.workday_definition.workday_duration.total_seconds(),
            "allowed_break_seconds": self.workday_definition.allowed_break_duration.total_seconds(),
            "time_of_all_activities_seconds": self.time_of_all_activities.total_seconds(),
            "time_of_all_breaks_seconds": self.time_of_all_breaks.total_seconds(),
            "time_already_actively_worked_seconds": self.time_already_actively_worked.total_seconds(),
            "time_left_to_work_actively_seconds": self.time_left_to_work_actively.total_seconds(),
            "overall_time_left_to_work_seconds": self.overall_time_left_to_work.total_seconds(),
            "overhours_seconds": self.overhours_time.total_seconds(),
            "break_time_left_seconds": self.break_time_left.total_seconds(),
            "valid_break_time_used_seconds": self.valid_break_time_used.total_seconds(),
        }


def replay_workday(
    day: date,
    definition: WorkdayDefinition,
    activities: Iterable[EndedActivity],
    breaks: Iterable[EndedBreak],
) -> Workday:
    """Rebuild a workday from stored occurrences.

    Breaks carrying ``revoked_at`` are folded in and then revoked, so the
    result matches the live read model that saw both events.
    """
    breaks = list(breaks)
    workday = Workday.create_based_on(definition, activities, breaks, day=day)
    for ended_break in breaks:
        if ended_break.revoked_at is not None:
            workday = workday.include_revoked_break(ended_break.revoke(ended_break.revoked_at))
    return workday


class WorkdayRepository:
    """Latest workday snapshot per date."""

    def __init__(
        self,
        definition_provider: Callable[[], WorkdayDefinition],
        publisher: Optional[Publisher] = None,
    ) -> None:
        self._definition_provider = definition_provider
        self._publisher = publisher
        self._workdays: dict[date, Workday] = {}
        self._lock = threading.RLock()

    def get(self, day: date) -> Workday:
        with self._lock:
            workday = self._workdays.get(day)
            if workday is None:
                workday = Workday.create_for_date(day, self._definition_provider())
                self._workdays[day] = workday
            return workday

    def add_or_update(self, workday: Workday) -> None:
        with self._lock:
            self._workdays[workday.date] = workday
        if self._publisher is not None:
            self._publisher.publish(WorkdayUpdated(workday))

    def apply(self, day: date, occurrence: Any) -> Workday:
        """Fold one occurrence into the snapshot for ``day`` atomically."""
        with self._lock:
            current = self.get(day)
            updated = current.include(occurrence)
            if updated is current:
                return current
            self._workdays[day] = updated
        logger.debug("Workday %s updated with %s", day, type(occurrence).__name__)
        if self._publisher is not None:
            self._publisher.publish(WorkdayUpdated(updated))
        return updated

    def dates(self) -> list[date]:
        with self._lock:
            return sorted(self._workdays)


class WorkdayReadModelUpdater:
    """Keeps the workday repository in step with activity and break events.

    Each occurrence is folded into the workday of the day it started on.
    """

    def __init__(self, repository: WorkdayRepository, clock: Clock) -> None:
        self._repository = repository
        self._clock = clock

    def register(self, bus: EventBus) -> None:
        bus.subscribe(PeriodicActivityEnded, self.on_activity_ended)
        bus.subscribe(BreakEnded, self.on_break_ended)
        bus.subscribe(BreakRevoked, self.on_break_revoked)

    def on_activity_ended(self, event: PeriodicActivityEnded) -> None:
        self._repository.apply(event.activity.started_at.date(), event.activity)

    def on_break_ended(self, event: BreakEnded) -> None:
        self._repository.apply(event.ended_break.started_at.date(), event.ended_break)

    def on_break_revoked(self, event: BreakRevoked) -> None:
        self._repository.apply(event.revoked_break.ended_break.started_at.date(), event.revoked_break)

    def today(self) -> Workday:
        return self._repository.get(self._clock.now().date())
