"""Interval ledger and per-day activity grouping."""

from __future__ import annotations

import logging
import re
import threading
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from .errors import InvalidArgument
from .models import EndedActivity, EndedBreak
from .periods import TimePeriod

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RecordedOccurrence:
    occurrence_id: uuid.UUID
    period: TimePeriod


def merge_periods(periods: Iterable[TimePeriod]) -> list[TimePeriod]:
    """Return the minimal sorted set of non-overlapping periods covering ``periods``.

    Periods that overlap or touch are coalesced.
    """
    merged: list[TimePeriod] = []
    for period in sorted(periods):
        if merged and period.start <= merged[-1].end:
            last = merged[-1]
            if period.end > last.end:
                merged[-1] = TimePeriod(last.start, period.end)
            continue
        merged.append(period)
    return merged


class GroupedActivity:
    """Wall-clock duration of covered, non-excluded time for one calendar day.

    Included periods are merged into a non-overlapping cover, so concurrent
    occurrences count once. Excluded periods (breaks) are merged among
    themselves too and only their overlap with the cover is subtracted, so
    overlapping breaks reduce the duration by the union of their spans.
    Both operations are keyed by occurrence id and are idempotent.
    """

    def __init__(self, day: date, description: str = "") -> None:
        self.date = day
        self.description = description
        self._included_by_id: dict[uuid.UUID, TimePeriod] = {}
        self._excluded_by_id: dict[uuid.UUID, TimePeriod] = {}
        self._included_intervals: list[TimePeriod] = []
        self._excluded_intervals: list[TimePeriod] = []
        self._duration = timedelta(0)

    @classmethod
    def create_empty_for_date(cls, day: date) -> "GroupedActivity":
        return cls(day)

    @classmethod
    def create_empty_with_description_for_date(
        cls, day: date, description: str
    ) -> "GroupedActivity":
        return cls(day, description)

    @property
    def duration(self) -> timedelta:
        return self._duration

    @property
    def included_intervals(self) -> tuple[TimePeriod, ...]:
        return tuple(self._included_intervals)

    @property
    def excluded_intervals(self) -> tuple[TimePeriod, ...]:
        return tuple(self._excluded_intervals)

    def include(self, occurrence_id: uuid.UUID, period: TimePeriod) -> None:
        if not self._record(self._included_by_id, self._excluded_by_id, occurrence_id, period):
            return
        self._included_intervals = merge_periods(self._included_by_id.values())
        self._recalculate()

    def reduce_by(self, occurrence_id: uuid.UUID, period: TimePeriod) -> None:
        if not self._record(self._excluded_by_id, self._included_by_id, occurrence_id, period):
            return
        self._excluded_intervals = merge_periods(self._excluded_by_id.values())
        self._recalculate()

    def get_included_occurrences(self) -> list[RecordedOccurrence]:
        return [RecordedOccurrence(key, value) for key, value in self._included_by_id.items()]

    def get_excluded_occurrences(self) -> list[RecordedOccurrence]:
        return [RecordedOccurrence(key, value) for key, value in self._excluded_by_id.items()]

    @staticmethod
    def _record(
        target: dict[uuid.UUID, TimePeriod],
        other: dict[uuid.UUID, TimePeriod],
        occurrence_id: uuid.UUID,
        period: TimePeriod,
    ) -> bool:
        if occurrence_id is None or period is None:
            raise InvalidArgument("occurrence_id and period are required")
        if occurrence_id in other:
            raise InvalidArgument(
                f"Occurrence {occurrence_id} is already recorded on the other side of the ledger"
            )
        existing = target.get(occurrence_id)
        if existing is not None:
            if existing == period:
                return False
            raise InvalidArgument(
                f"Occurrence {occurrence_id} is already recorded with a different period"
            )
        target[occurrence_id] = period
        return True

    def _recalculate(self) -> None:
        covered = sum((period.duration for period in self._included_intervals), timedelta(0))
        excluded = timedelta(0)
        for excluded_period in self._excluded_intervals:
            for included_period in self._included_intervals:
                excluded += excluded_period.overlap_duration(included_period)
        self._duration = covered - excluded

    def __repr__(self) -> str:
        return (
            f"GroupedActivity(date={self.date.isoformat()}, "
            f"description={self.description!r}, duration={self._duration})"
        )


_WHITESPACE = re.compile(r"\s+")


def _group_key(description: str) -> str:
    return _WHITESPACE.sub(" ", description.strip()).casefold()


def group_activities(
    activities: Iterable[EndedActivity], breaks: Iterable[EndedBreak]
) -> list[GroupedActivity]:
    """Group activities per day and description, then subtract every break.

    Revoked breaks are skipped. Groups are ordered by day, then by duration
    (longest first).
    """
    groups: dict[tuple[date, str], GroupedActivity] = {}
    for activity in activities:
        key = (activity.started_at.date(), _group_key(activity.description))
        group = groups.get(key)
        if group is None:
            label = activity.description.strip() or activity.system_state.kind.value
            group = GroupedActivity.create_empty_with_description_for_date(key[0], label)
            groups[key] = group
        group.include(activity.id, activity.period)

    for ended_break in breaks:
        if ended_break.is_revoked:
            continue
        for group in groups.values():
            group.reduce_by(ended_break.id, ended_break.period)

    return sorted(groups.values(), key=lambda item: (item.date, -item.duration))


class ActivitiesAnalyser:
    """Collects ended activities and breaks as they happen for ad-hoc analytics."""

    def __init__(self) -> None:
        self._activities: dict[uuid.UUID, EndedActivity] = {}
        self._breaks: dict[uuid.UUID, EndedBreak] = {}
        self._lock = threading.Lock()

    def analyse_activity(self, activity: EndedActivity) -> None:
        with self._lock:
            self._activities[activity.id] = activity

    def analyse_break(self, ended_break: EndedBreak) -> None:
        with self._lock:
            self._breaks[ended_break.id] = ended_break

    def forget_break(self, break_id: uuid.UUID) -> Optional[EndedBreak]:
        with self._lock:
            removed = self._breaks.pop(break_id, None)
        if removed is None:
            logger.warning("Break %s was revoked but is not part of the analysis.", break_id)
        else:
            logger.info("Break %s was revoked and removed from the analysis.", break_id)
        return removed

    def get_grouped_activities(self, day: Optional[date] = None) -> list[GroupedActivity]:
        with self._lock:
            activities = list(self._activities.values())
            breaks = list(self._breaks.values())
        if day is not None:
            activities = [item for item in activities if item.started_at.date() == day]
        return group_activities(activities, breaks)
