"""Break detection from a queue of system-state signals."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from .clock import Clock
from .errors import BreakNotFound, InvalidBreakEnd, TrackerError
from .events import BreakEnded, BreakRevoked, BreakStarted, Publisher
from .models import ActivityToProcess, EndedBreak, RevokedBreak, StartedBreak, SystemState

logger = logging.getLogger(__name__)

SYSTEM_LOCKED_DESCRIPTION = "System Locked"


@dataclass(frozen=True, slots=True)
class NoBreakOpen:
    pass


@dataclass(frozen=True, slots=True)
class BreakOpen:
    started_break: StartedBreak


BreakState = Union[NoBreakOpen, BreakOpen]


class EndedBreakStore:
    """Thread-safe map of ended breaks with atomic insert and remove by id."""

    def __init__(self) -> None:
        self._breaks: dict[uuid.UUID, EndedBreak] = {}
        self._lock = threading.Lock()

    def add(self, ended_break: EndedBreak) -> bool:
        with self._lock:
            if ended_break.id in self._breaks:
                return False
            self._breaks[ended_break.id] = ended_break
            return True

    def remove(self, break_id: uuid.UUID) -> Optional[EndedBreak]:
        with self._lock:
            return self._breaks.pop(break_id, None)

    def get(self, break_id: uuid.UUID) -> Optional[EndedBreak]:
        with self._lock:
            return self._breaks.get(break_id)

    def values(self) -> tuple[EndedBreak, ...]:
        with self._lock:
            return tuple(self._breaks.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._breaks)


class RevokedBreakLog:
    """Thread-safe append-only log of revoked breaks."""

    def __init__(self) -> None:
        self._items: list[RevokedBreak] = []
        self._lock = threading.Lock()

    def append(self, revoked_break: RevokedBreak) -> None:
        with self._lock:
            self._items.append(revoked_break)

    def discard(self, revoked_break: RevokedBreak) -> None:
        with self._lock:
            if revoked_break in self._items:
                self._items.remove(revoked_break)

    def values(self) -> tuple[RevokedBreak, ...]:
        with self._lock:
            return tuple(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class BreakTracker:
    """Classifies queued signals into started, ended and revoked breaks.

    A break opens when the system gets locked, or when the gap between two
    signals exceeds the inactivity threshold (the break is then dated back to
    the last activity). Any non-lock signal ends an open break. After each
    drain the live clock is checked as well, so a break also opens when no
    signal arrives at all.
    """

    def __init__(
        self,
        publisher: Publisher,
        clock: Clock,
        inactivity_threshold: timedelta,
        *,
        started_break: Optional[StartedBreak] = None,
        ended_breaks: Optional[EndedBreakStore] = None,
        revoked_breaks: Optional[RevokedBreakLog] = None,
    ) -> None:
        self._publisher = publisher
        self._clock = clock
        self._inactivity_threshold = inactivity_threshold
        self._ended_breaks = ended_breaks if ended_breaks is not None else EndedBreakStore()
        self._revoked_breaks = revoked_breaks if revoked_breaks is not None else RevokedBreakLog()
        self._queue: deque[ActivityToProcess] = deque()
        self._processed: list[ActivityToProcess] = []
        self._state: BreakState = BreakOpen(started_break) if started_break else NoBreakOpen()
        self._last_time_of_activity = clock.now()
        self._drain_lock = threading.RLock()
        self._reported_stuck_break: Optional[uuid.UUID] = None

    @property
    def state(self) -> BreakState:
        return self._state

    @property
    def current_break(self) -> Optional[StartedBreak]:
        state = self._state
        return state.started_break if isinstance(state, BreakOpen) else None

    @property
    def last_time_of_activity(self) -> datetime:
        return self._last_time_of_activity

    @property
    def inactivity_threshold(self) -> timedelta:
        return self._inactivity_threshold

    @inactivity_threshold.setter
    def inactivity_threshold(self, value: timedelta) -> None:
        with self._drain_lock:
            if value != self._inactivity_threshold:
                logger.info("Inactivity threshold changed to %s", value)
            self._inactivity_threshold = value

    def add_activity_to_process(
        self,
        timestamp: datetime,
        system_state: SystemState,
        occurrence_id: uuid.UUID,
    ) -> None:
        """Enqueue one signal and drain the queue."""
        activity = ActivityToProcess(timestamp, system_state, occurrence_id)
        with self._drain_lock:
            self._queue.append(activity)
            logger.info("Add: %s", activity)
            self.process_activities()

    def process_activities(self) -> None:
        """Drain the queue, then check the live clock for a pure time-out.

        Every queued item is consumed exactly once. If any item failed, the
        first error is raised after the whole queue has been drained.
        """
        errors: list[TrackerError] = []
        with self._drain_lock:
            while self._queue:
                activity = self._queue.popleft()
                self._processed.append(activity)
                logger.debug("Process: %s", activity)
                try:
                    self._apply(activity)
                except TrackerError as exc:
                    logger.warning("Signal %s could not be applied: %s", activity, exc)
                    errors.append(exc)

            now = self._clock.now()
            if (
                isinstance(self._state, NoBreakOpen)
                and now - self._last_time_of_activity > self._inactivity_threshold
            ):
                self._open_break(now, self._lack_of_activity_description())

        if errors:
            raise errors[0]

    def revoke_break(self, break_id: uuid.UUID, revoke_time: datetime) -> RevokedBreak:
        ended_break = self._ended_breaks.remove(break_id)
        if ended_break is None:
            raise BreakNotFound(f"Break with id {break_id} does not exist")
        revoked_break = ended_break.revoke(revoke_time)
        self._revoked_breaks.append(revoked_break)
        try:
            self._publisher.publish(BreakRevoked(revoked_break))
        except Exception:
            # Put the break back so it can be revoked again.
            self._revoked_breaks.discard(revoked_break)
            self._ended_breaks.add(ended_break)
            logger.warning("Revoke of break %s rolled back.", break_id)
            raise
        logger.info("Revoke: %s", revoked_break)
        return revoked_break

    def get_ended_breaks(self) -> tuple[EndedBreak, ...]:
        return self._ended_breaks.values()

    def get_revoked_breaks(self) -> tuple[RevokedBreak, ...]:
        return self._revoked_breaks.values()

    def get_processed_activities(self) -> tuple[ActivityToProcess, ...]:
        with self._drain_lock:
            return tuple(self._processed)

    def _apply(self, activity: ActivityToProcess) -> None:
        state = self._state
        if isinstance(state, NoBreakOpen):
            if activity.system_state.is_system_locked:
                self._open_break(activity.timestamp, SYSTEM_LOCKED_DESCRIPTION)
                return

            time_of_lack_of_activity = activity.timestamp - self._last_time_of_activity
            logger.debug(
                "Activity at %s, last activity at %s, lack of activity %s",
                activity.timestamp,
                self._last_time_of_activity,
                time_of_lack_of_activity,
            )
            if time_of_lack_of_activity > self._inactivity_threshold:
                self._open_break(self._last_time_of_activity, self._lack_of_activity_description())
                return

            self._last_time_of_activity = activity.timestamp
            return

        if activity.system_state.is_system_locked:
            # Already on a break; another lock signal changes nothing.
            return

        started_break = state.started_break
        try:
            ended_break = started_break.end_break(activity.timestamp)
        except InvalidBreakEnd:
            if self._reported_stuck_break != started_break.id:
                self._reported_stuck_break = started_break.id
                logger.error(
                    "Break %s started at %s cannot be ended at %s and stays open.",
                    started_break.id,
                    started_break.started_at,
                    activity.timestamp,
                )
            raise
        self._ended_breaks.add(ended_break)
        self._state = NoBreakOpen()
        self._last_time_of_activity = activity.timestamp
        logger.info("End: %s", ended_break)
        self._publisher.publish(BreakEnded(ended_break))

    def _open_break(self, started_at: datetime, description: str) -> None:
        started_break = StartedBreak(started_at, description)
        self._state = BreakOpen(started_break)
        logger.info("Start: %s", started_break)
        self._publisher.publish(BreakStarted(started_break))

    def _lack_of_activity_description(self) -> str:
        minutes = self._inactivity_threshold.total_seconds() / 60
        return f"Lack of activity for {minutes:g} minutes"
