from __future__ import annotations

from datetime import datetime, timedelta

import pytest


class FakeClock:
    """Clock whose time only moves when a test moves it."""

    def __init__(self, start: datetime) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs: float) -> datetime:
        self._now += timedelta(**kwargs)
        return self._now


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list = []

    def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]


@pytest.fixture
def day_start() -> datetime:
    return datetime(2024, 3, 4, 9, 0)


@pytest.fixture
def clock(day_start: datetime) -> FakeClock:
    return FakeClock(day_start)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "tracker.sqlite3"
