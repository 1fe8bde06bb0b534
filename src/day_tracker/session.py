"""Composition root wiring trackers, read models and persistence together."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from .activities import ActivityTracker, LatestStateRecognizer
from .analytics import ActivitiesAnalyser, GroupedActivity, group_activities
from .breaks import BreakTracker, EndedBreakStore, RevokedBreakLog
from .clock import Clock, SystemClock
from .config import TrackerSettings, load_settings
from .db import database_connection, fetch_activities_for_day, fetch_breaks_for_day
from .events import (
    BreakEnded,
    BreakRevoked,
    EventBus,
    InstantActivityOccurred,
    PeriodicActivityEnded,
    PeriodicActivityStarted,
)
from .models import EndedBreak, RevokedBreak, StateKind, SystemState
from .notifications import WorkdayNotifier
from .persistence import EventPersister
from .workday import Workday, WorkdayReadModelUpdater, WorkdayRepository, replay_workday

logger = logging.getLogger(__name__)


class TrackingSession:
    """One running instance of the tracker.

    Signals pushed into the recognizers flow through the activity tracker and
    the break tracker; the resulting events update the workday read model,
    the analyser and (when a database path is given) SQLite.
    """

    def __init__(
        self,
        settings: Optional[TrackerSettings] = None,
        *,
        clock: Optional[Clock] = None,
        db_path: Optional[Path] = None,
        bus: Optional[EventBus] = None,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self.clock = clock or SystemClock()
        self.bus = bus or EventBus()
        self.db_path = Path(db_path) if db_path is not None else None

        self.periodic_recognizer = LatestStateRecognizer(
            SystemState.focus_on_application("Unknown")
        )
        self.instant_recognizer = LatestStateRecognizer(SystemState.mouse_moved(0, 0))

        # Persistence subscribes first so storage is written before read models react.
        self.persister: Optional[EventPersister] = None
        if self.db_path is not None:
            self.persister = EventPersister(self.db_path)
            self.persister.register(self.bus)

        self.activity_tracker = ActivityTracker(
            self.clock, self.bus, self.periodic_recognizer, self.instant_recognizer
        )
        self.ended_breaks = EndedBreakStore()
        self.revoked_breaks = RevokedBreakLog()
        self.break_tracker = BreakTracker(
            self.bus,
            self.clock,
            self.settings.inactivity_threshold,
            ended_breaks=self.ended_breaks,
            revoked_breaks=self.revoked_breaks,
        )
        self.workdays = WorkdayRepository(lambda: self.settings.workday_definition, self.bus)
        self.read_model_updater = WorkdayReadModelUpdater(self.workdays, self.clock)
        self.read_model_updater.register(self.bus)
        self.analyser = ActivitiesAnalyser()
        self.notifier = WorkdayNotifier()
        self.notifier.register(self.bus)

        self.bus.subscribe(PeriodicActivityStarted, self._on_periodic_activity_started)
        self.bus.subscribe(InstantActivityOccurred, self._on_instant_activity)
        self.bus.subscribe(PeriodicActivityEnded, lambda event: self.analyser.analyse_activity(event.activity))
        self.bus.subscribe(BreakEnded, lambda event: self.analyser.analyse_break(event.ended_break))
        self.bus.subscribe(BreakRevoked, lambda event: self.analyser.forget_break(event.revoked_break.break_id))

        if self.db_path is not None:
            self._restore_today()

    @classmethod
    def open(
        cls, db_path: Path, settings: Optional[TrackerSettings] = None
    ) -> "TrackingSession":
        """Start a session on ``db_path`` using its stored settings unless given."""
        if settings is None:
            with database_connection(db_path) as conn:
                settings = load_settings(conn)
        return cls(settings, db_path=db_path)

    def apply_settings(self, settings: TrackerSettings) -> None:
        """Switch to new settings without restarting.

        Workdays created from now on use the new definition.
        """
        self.settings = settings
        self.break_tracker.inactivity_threshold = settings.inactivity_threshold
        logger.info("Settings updated: %s", settings)

    def push_state(self, state: SystemState) -> None:
        """Record a normalized signal from an external probe."""
        if state.kind is StateKind.MOUSE_MOVED:
            self.instant_recognizer.update(state)
        else:
            self.periodic_recognizer.update(state)

    def revoke_break(self, break_id: uuid.UUID, revoke_time: Optional[datetime] = None) -> RevokedBreak:
        return self.break_tracker.revoke_break(break_id, revoke_time or self.clock.now())

    def today(self) -> date:
        return self.clock.now().date()

    def workday_for(self, day: date) -> Workday:
        """Live snapshot for today, replay from storage for other days."""
        if day == self.today() or self.db_path is None:
            return self.workdays.get(day)
        with database_connection(self.db_path) as conn:
            activities = fetch_activities_for_day(conn, day)
            breaks = fetch_breaks_for_day(conn, day)
        return replay_workday(day, self.settings.workday_definition, activities, breaks)

    def breaks_for(self, day: date) -> list[EndedBreak]:
        if day == self.today() or self.db_path is None:
            live = [item for item in self.break_tracker.get_ended_breaks() if item.started_at.date() == day]
            revoked = [
                item.ended_break
                for item in self.break_tracker.get_revoked_breaks()
                if item.ended_break.started_at.date() == day
            ]
            return sorted(live + revoked, key=lambda item: item.started_at)
        with database_connection(self.db_path) as conn:
            return fetch_breaks_for_day(conn, day)

    def grouped_activities_for(self, day: date) -> list[GroupedActivity]:
        if day == self.today() or self.db_path is None:
            return self.analyser.get_grouped_activities(day)
        with database_connection(self.db_path) as conn:
            activities = fetch_activities_for_day(conn, day)
            breaks = fetch_breaks_for_day(conn, day)
        return group_activities(activities, breaks)

    def close(self) -> None:
        if self.persister is not None:
            self.persister.close()

    def _restore_today(self) -> None:
        day = self.today()
        with database_connection(self.db_path) as conn:
            activities = fetch_activities_for_day(conn, day)
            breaks = fetch_breaks_for_day(conn, day)
        if not activities and not breaks:
            return
        for activity in activities:
            self.analyser.analyse_activity(activity)
        for ended_break in breaks:
            if not ended_break.is_revoked:
                self.analyser.analyse_break(ended_break)
                # Revocable again after a restart.
                self.ended_breaks.add(ended_break)
            else:
                self.revoked_breaks.append(RevokedBreak(ended_break, ended_break.revoked_at))
        self.workdays.add_or_update(
            replay_workday(day, self.settings.workday_definition, activities, breaks)
        )
        logger.info(
            "Restored %d activities and %d breaks recorded earlier today.",
            len(activities),
            len(breaks),
        )

    def _on_periodic_activity_started(self, event: PeriodicActivityStarted) -> None:
        activity = event.activity
        self.break_tracker.add_activity_to_process(
            activity.started_at, activity.system_state, activity.id
        )

    def _on_instant_activity(self, event: InstantActivityOccurred) -> None:
        activity = event.activity
        self.break_tracker.add_activity_to_process(
            activity.occurred_at, activity.system_state, activity.id
        )
