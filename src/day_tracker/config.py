"""Configuration models and helpers for the day tracker."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .db import get_setting, set_setting
from .workday import WorkdayDefinition

logger = logging.getLogger(__name__)

WORKDAY_DURATION_KEY = "Workday.Duration"
ALLOWED_BREAK_DURATION_KEY = "Workday.AllowedBreakDuration"
INACTIVITY_THRESHOLD_KEY = "Breaks.TimeOfNoActivityToStartBreak"
SAMPLE_INTERVAL_KEY = "Collector.SampleInterval"


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the trackers and the workday ledger."""

    sample_interval: timedelta = timedelta(seconds=5)
    inactivity_threshold: timedelta = timedelta(minutes=5)
    workday_duration: timedelta = timedelta(hours=8)
    allowed_break_duration: timedelta = timedelta(minutes=50)

    @property
    def workday_definition(self) -> WorkdayDefinition:
        return WorkdayDefinition(self.workday_duration, self.allowed_break_duration)

    @classmethod
    def from_intervals(
        cls,
        sample_seconds: float = 5.0,
        idle_minutes: float = 5.0,
        workday_hours: Optional[float] = None,
        break_minutes: Optional[float] = None,
    ) -> "TrackerSettings":
        defaults = cls()
        return cls(
            sample_interval=timedelta(seconds=sample_seconds),
            inactivity_threshold=timedelta(minutes=idle_minutes),
            workday_duration=(
                timedelta(hours=workday_hours)
                if workday_hours is not None
                else defaults.workday_duration
            ),
            allowed_break_duration=(
                timedelta(minutes=break_minutes)
                if break_minutes is not None
                else defaults.allowed_break_duration
            ),
        )


def load_settings(conn: sqlite3.Connection) -> TrackerSettings:
    """Read stored settings, falling back to defaults for missing keys."""
    defaults = TrackerSettings()
    return TrackerSettings(
        sample_interval=_read_seconds(conn, SAMPLE_INTERVAL_KEY, defaults.sample_interval),
        inactivity_threshold=_read_seconds(
            conn, INACTIVITY_THRESHOLD_KEY, defaults.inactivity_threshold
        ),
        workday_duration=_read_seconds(conn, WORKDAY_DURATION_KEY, defaults.workday_duration),
        allowed_break_duration=_read_seconds(
            conn, ALLOWED_BREAK_DURATION_KEY, defaults.allowed_break_duration
        ),
    )


def persist_settings(conn: sqlite3.Connection, settings: TrackerSettings) -> None:
    set_setting(conn, SAMPLE_INTERVAL_KEY, _seconds(settings.sample_interval))
    set_setting(conn, INACTIVITY_THRESHOLD_KEY, _seconds(settings.inactivity_threshold))
    set_setting(conn, WORKDAY_DURATION_KEY, _seconds(settings.workday_duration))
    set_setting(conn, ALLOWED_BREAK_DURATION_KEY, _seconds(settings.allowed_break_duration))


def _read_seconds(conn: sqlite3.Connection, key: str, default: timedelta) -> timedelta:
    raw = get_setting(conn, key)
    if raw is None:
        return default
    try:
        return timedelta(seconds=float(raw))
    except ValueError:
        logger.warning("Ignoring invalid value %r for setting %s.", raw, key)
        return default


def _seconds(value: timedelta) -> str:
    return repr(value.total_seconds())
