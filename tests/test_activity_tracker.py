from datetime import timedelta

import pytest

from day_tracker.activities import ActivityTracker, LatestStateRecognizer
from day_tracker.errors import InvalidArgument, InvalidInterval
from day_tracker.events import InstantActivityOccurred, PeriodicActivityEnded, PeriodicActivityStarted
from day_tracker.models import EndedActivity, StartedActivity, StateKind, SystemState

EDITOR = SystemState.focus_on_application("Editor")
BROWSER = SystemState.focus_on_application("Browser")


@pytest.fixture
def recognizer() -> LatestStateRecognizer:
    return LatestStateRecognizer(EDITOR)


@pytest.fixture
def tracker(clock, publisher, recognizer) -> ActivityTracker:
    return ActivityTracker(clock, publisher, recognizer)


def test_starts_with_application_started_activity(tracker, day_start):
    current = tracker.get_current_activity()
    assert current.started_at == day_start
    assert current.system_state.kind is StateKind.APPLICATION_STARTED
    assert current.system_state.description == "Day Tracker"


def test_state_change_ends_current_and_starts_next(tracker, clock, publisher, recognizer, day_start):
    clock.advance(minutes=1)
    tracker.recognize_activity()
    clock.advance(minutes=30)
    recognizer.update(BROWSER)
    tracker.recognize_activity()

    ended = tracker.get_ended_activities()
    assert [item.system_state for item in ended][-1] == EDITOR
    assert ended[-1].duration == timedelta(minutes=30)
    assert tracker.get_current_activity().system_state == BROWSER
    assert tracker.get_current_activity().started_at == ended[-1].ended_at

    kinds = [type(event) for event in publisher.events]
    assert kinds == [
        PeriodicActivityEnded,
        PeriodicActivityStarted,
        PeriodicActivityEnded,
        PeriodicActivityStarted,
    ]


def test_unchanged_state_publishes_nothing(tracker, clock, publisher):
    tracker.recognize_activity()
    publisher.events.clear()
    clock.advance(seconds=5)
    tracker.recognize_activity()
    assert publisher.events == []


def test_instant_activity_published_only_on_change(clock, publisher, recognizer):
    instant = LatestStateRecognizer(SystemState.mouse_moved(0, 0))
    tracker = ActivityTracker(clock, publisher, recognizer, instant)
    tracker.recognize_activity()
    tracker.recognize_activity()
    instant.update(SystemState.mouse_moved(10, 20))
    clock.advance(seconds=5)
    tracker.recognize_activity()

    occurred = publisher.of_type(InstantActivityOccurred)
    assert [event.activity.system_state.description for event in occurred] == [
        "Mouse position: 0x0",
        "Mouse position: 10x20",
    ]
    assert len(tracker.get_instant_activities()) == 2


def test_started_activity_keeps_id_when_ended(day_start):
    started = StartedActivity(day_start, EDITOR)
    ended = started.end(day_start + timedelta(minutes=3))
    assert ended.id == started.id
    assert started.duration_until(day_start + timedelta(minutes=3)) == timedelta(minutes=3)


def test_ended_activity_validation(day_start):
    with pytest.raises(InvalidInterval):
        EndedActivity(day_start, day_start - timedelta(seconds=1), EDITOR)
    with pytest.raises(InvalidArgument):
        EndedActivity(day_start, day_start, None)
