"""Periodic activity tracking on top of a pluggable state recognizer."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from .clock import Clock
from .events import InstantActivityOccurred, PeriodicActivityEnded, PeriodicActivityStarted, Publisher
from .models import EndedActivity, InstantActivity, StartedActivity, SystemState

logger = logging.getLogger(__name__)

APPLICATION_NAME = "Day Tracker"


class StateRecognizer(Protocol):
    def recognize_state(self) -> SystemState:
        ...


class LatestStateRecognizer:
    """Holds the most recent state pushed by an external probe."""

    def __init__(self, initial: SystemState) -> None:
        self._state = initial
        self._lock = threading.Lock()

    def update(self, state: SystemState) -> None:
        with self._lock:
            self._state = state

    def recognize_state(self) -> SystemState:
        with self._lock:
            return self._state


class ActivityTracker:
    """Turns recognized states into started/ended periodic activities."""

    def __init__(
        self,
        clock: Clock,
        publisher: Publisher,
        periodic_recognizer: StateRecognizer,
        instant_recognizer: Optional[StateRecognizer] = None,
    ) -> None:
        self._clock = clock
        self._publisher = publisher
        self._periodic_recognizer = periodic_recognizer
        self._instant_recognizer = instant_recognizer
        self._current = StartedActivity(
            clock.now(), SystemState.application_started(APPLICATION_NAME)
        )
        self._ended: list[EndedActivity] = []
        self._instant: list[InstantActivity] = []
        self._last_instant: Optional[InstantActivity] = None
        self._lock = threading.Lock()

    def recognize_activity(self) -> None:
        recognized = self._periodic_recognizer.recognize_state()
        with self._lock:
            if recognized != self._current.system_state:
                now = self._clock.now()
                ended = self._current.end(now)
                self._ended.append(ended)
                self._current = StartedActivity(ended.ended_at, recognized)
                started = self._current
            else:
                ended = started = None

        if ended is not None and started is not None:
            logger.debug("Activity ended: %s", ended)
            self._publisher.publish(PeriodicActivityEnded(ended))
            self._publisher.publish(PeriodicActivityStarted(started))

        if self._instant_recognizer is None:
            return
        instant_state = self._instant_recognizer.recognize_state()
        with self._lock:
            last = self._last_instant
            if last is not None and last.system_state == instant_state:
                return
            instant = InstantActivity(self._clock.now(), instant_state)
            self._last_instant = instant
            self._instant.append(instant)
        self._publisher.publish(InstantActivityOccurred(instant))

    def get_current_activity(self) -> StartedActivity:
        with self._lock:
            return self._current

    def get_ended_activities(self) -> tuple[EndedActivity, ...]:
        with self._lock:
            return tuple(self._ended)

    def get_instant_activities(self) -> tuple[InstantActivity, ...]:
        with self._lock:
            return tuple(self._instant)
