import logging
import uuid
from datetime import datetime, timedelta

import pytest

from day_tracker.breaks import BreakOpen, BreakTracker, EndedBreakStore, NoBreakOpen
from day_tracker.errors import BreakNotFound, InvalidArgument, InvalidBreakEnd
from day_tracker.events import BreakEnded, BreakRevoked, BreakStarted
from day_tracker.models import EndedBreak, SystemState

THRESHOLD = timedelta(minutes=5)
FOCUS = SystemState.focus_on_application("Editor")
LOCKED = SystemState.system_locked()


@pytest.fixture
def tracker(clock, publisher) -> BreakTracker:
    return BreakTracker(publisher, clock, THRESHOLD)


def signal(tracker, clock, when: datetime, state: SystemState = FOCUS) -> None:
    clock.set(when)
    tracker.add_activity_to_process(when, state, uuid.uuid4())


def test_starts_without_open_break(tracker, day_start):
    assert isinstance(tracker.state, NoBreakOpen)
    assert tracker.current_break is None
    assert tracker.last_time_of_activity == day_start


class TestInactivity:
    def test_gap_of_exactly_the_threshold_does_not_start_a_break(self, tracker, clock, publisher, day_start):
        signal(tracker, clock, day_start + THRESHOLD)
        assert publisher.of_type(BreakStarted) == []
        assert tracker.last_time_of_activity == day_start + THRESHOLD

    def test_longer_gap_starts_break_at_last_activity(self, tracker, clock, publisher, day_start):
        signal(tracker, clock, day_start + THRESHOLD + timedelta(seconds=1))
        started = publisher.of_type(BreakStarted)
        assert len(started) == 1
        assert started[0].started_break.started_at == day_start
        assert started[0].started_break.description == "Lack of activity for 5 minutes"
        assert isinstance(tracker.state, BreakOpen)

    def test_regular_signals_only_move_last_activity(self, tracker, clock, publisher, day_start):
        for minute in (1, 4, 8, 12):
            signal(tracker, clock, day_start + timedelta(minutes=minute))
        assert publisher.events == []
        assert tracker.last_time_of_activity == day_start + timedelta(minutes=12)

    def test_time_out_without_signal_opens_break_at_now(self, tracker, clock, publisher, day_start):
        clock.set(day_start + timedelta(minutes=6))
        tracker.process_activities()
        started = publisher.of_type(BreakStarted)
        assert len(started) == 1
        assert started[0].started_break.started_at == day_start + timedelta(minutes=6)

    def test_time_out_check_does_not_reopen_an_open_break(self, tracker, clock, publisher, day_start):
        clock.set(day_start + timedelta(minutes=6))
        tracker.process_activities()
        clock.set(day_start + timedelta(minutes=20))
        tracker.process_activities()
        assert len(publisher.of_type(BreakStarted)) == 1


class TestSystemLock:
    def test_lock_opens_break_at_signal_time(self, tracker, clock, publisher, day_start):
        signal(tracker, clock, day_start + timedelta(minutes=1), LOCKED)
        assert tracker.current_break.started_at == day_start + timedelta(minutes=1)
        assert tracker.current_break.description == "System Locked"

    def test_second_lock_is_absorbed(self, tracker, clock, publisher, day_start):
        signal(tracker, clock, day_start + timedelta(minutes=1), LOCKED)
        opened = tracker.current_break
        signal(tracker, clock, day_start + timedelta(minutes=3), LOCKED)
        assert tracker.current_break == opened
        assert len(publisher.of_type(BreakStarted)) == 1
        assert publisher.of_type(BreakEnded) == []

    def test_non_lock_signal_ends_break(self, tracker, clock, publisher, day_start):
        signal(tracker, clock, day_start + timedelta(minutes=1), LOCKED)
        opened = tracker.current_break
        signal(tracker, clock, day_start + timedelta(minutes=10))

        ended = publisher.of_type(BreakEnded)
        assert len(ended) == 1
        assert ended[0].ended_break.id == opened.id
        assert ended[0].ended_break.ended_at == day_start + timedelta(minutes=10)
        assert ended[0].ended_break.break_duration == timedelta(minutes=9)
        assert isinstance(tracker.state, NoBreakOpen)
        assert tracker.last_time_of_activity == day_start + timedelta(minutes=10)
        assert tracker.get_ended_breaks() == (ended[0].ended_break,)


class _RejectingRevocations:
    """Publisher whose revocation subscriber fails, like storage refusing the update."""

    def __init__(self) -> None:
        self.reject = True

    def publish(self, event) -> None:
        if self.reject and isinstance(event, BreakRevoked):
            raise BreakNotFound("already revoked in storage")


class TestRevoke:
    def _ended_break(self, tracker, clock, day_start) -> EndedBreak:
        signal(tracker, clock, day_start + timedelta(minutes=1), LOCKED)
        signal(tracker, clock, day_start + timedelta(minutes=30))
        return tracker.get_ended_breaks()[0]

    def test_revoke_moves_break_to_revoked_store(self, tracker, clock, publisher, day_start):
        ended_break = self._ended_break(tracker, clock, day_start)
        revoke_time = day_start + timedelta(hours=1)

        revoked = tracker.revoke_break(ended_break.id, revoke_time)

        assert revoked.break_id == ended_break.id
        assert revoked.revoked_at == revoke_time
        assert revoked.ended_break.revoked_at == revoke_time
        assert tracker.get_ended_breaks() == ()
        assert tracker.get_revoked_breaks() == (revoked,)
        assert publisher.of_type(BreakRevoked)[0].revoked_break == revoked

    def test_revoking_twice_fails(self, tracker, clock, day_start):
        ended_break = self._ended_break(tracker, clock, day_start)
        tracker.revoke_break(ended_break.id, day_start + timedelta(hours=1))
        with pytest.raises(BreakNotFound):
            tracker.revoke_break(ended_break.id, day_start + timedelta(hours=2))

    def test_revoking_unknown_break_fails(self, tracker, day_start):
        with pytest.raises(BreakNotFound):
            tracker.revoke_break(uuid.uuid4(), day_start)

    def test_failed_delivery_rolls_the_revocation_back(self, clock, day_start):
        publisher = _RejectingRevocations()
        tracker = BreakTracker(publisher, clock, THRESHOLD)
        ended_break = self._ended_break(tracker, clock, day_start)

        with pytest.raises(BreakNotFound):
            tracker.revoke_break(ended_break.id, day_start + timedelta(hours=1))

        assert tracker.get_ended_breaks() == (ended_break,)
        assert tracker.get_revoked_breaks() == ()

        publisher.reject = False
        revoked = tracker.revoke_break(ended_break.id, day_start + timedelta(hours=2))
        assert tracker.get_revoked_breaks() == (revoked,)

    def test_injected_store_is_used(self, clock, publisher, day_start):
        store = EndedBreakStore()
        restored = EndedBreak.create_sample(day_start - timedelta(hours=1), day_start)
        store.add(restored)
        tracker = BreakTracker(publisher, clock, THRESHOLD, ended_breaks=store)
        tracker.revoke_break(restored.id, day_start)
        assert len(store) == 0


class TestFailures:
    def test_missing_state_is_rejected(self, tracker, day_start):
        with pytest.raises(InvalidArgument):
            tracker.add_activity_to_process(day_start, None, uuid.uuid4())

    def test_break_cannot_end_on_another_day(self, clock, publisher):
        clock.set(datetime(2024, 3, 4, 23, 58))
        tracker = BreakTracker(publisher, clock, THRESHOLD)
        signal(tracker, clock, datetime(2024, 3, 4, 23, 59), LOCKED)

        with pytest.raises(InvalidBreakEnd):
            signal(tracker, clock, datetime(2024, 3, 5, 0, 1))

        assert len(tracker.get_processed_activities()) == 2
        assert isinstance(tracker.state, BreakOpen)
        assert publisher.of_type(BreakEnded) == []

    def test_break_cannot_end_before_it_started(self, tracker, clock, publisher, day_start):
        signal(tracker, clock, day_start + timedelta(minutes=10), LOCKED)
        opened = tracker.current_break

        with pytest.raises(InvalidBreakEnd):
            signal(tracker, clock, day_start + timedelta(minutes=5))

        assert tracker.state == BreakOpen(opened)
        assert tracker.get_ended_breaks() == ()
        assert publisher.of_type(BreakEnded) == []

    def test_break_stuck_across_midnight_is_reported_once(self, clock, publisher, caplog):
        clock.set(datetime(2024, 3, 4, 23, 58))
        tracker = BreakTracker(publisher, clock, THRESHOLD)
        signal(tracker, clock, datetime(2024, 3, 4, 23, 59), LOCKED)
        stuck = tracker.current_break

        with caplog.at_level(logging.ERROR, logger="day_tracker.breaks"):
            for minute in (1, 2):
                with pytest.raises(InvalidBreakEnd):
                    signal(tracker, clock, datetime(2024, 3, 5, 0, minute))

        errors = [
            record for record in caplog.records
            if record.name == "day_tracker.breaks" and record.levelno == logging.ERROR
        ]
        assert len(errors) == 1
        assert str(stuck.id) in errors[0].getMessage()


def test_threshold_change_applies_to_next_signal(tracker, clock, publisher, day_start):
    tracker.inactivity_threshold = timedelta(minutes=30)
    signal(tracker, clock, day_start + timedelta(minutes=20))
    assert publisher.of_type(BreakStarted) == []

    tracker.inactivity_threshold = timedelta(minutes=1)
    signal(tracker, clock, day_start + timedelta(minutes=22))
    started = publisher.of_type(BreakStarted)
    assert len(started) == 1
    assert started[0].started_break.description == "Lack of activity for 1 minutes"


def test_ended_break_cannot_end_before_it_started(day_start):
    with pytest.raises(InvalidBreakEnd):
        EndedBreak(uuid.uuid4(), day_start, day_start - timedelta(minutes=1), "System Locked")
    with pytest.raises(InvalidBreakEnd):
        EndedBreak.create_sample(day_start, day_start - timedelta(seconds=1))
