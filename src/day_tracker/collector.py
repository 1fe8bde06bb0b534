"""Periodic scheduler driving the activity and break trackers."""

from __future__ import annotations

import logging
import threading

from .errors import TrackerError
from .session import TrackingSession

logger = logging.getLogger(__name__)


class ActivityCollector:
    """Samples the recognizers at a fixed interval and drains the break queue.

    The interval is read from the session's settings before every wait, so
    updated settings take effect on the next sample.
    """

    def __init__(self, session: TrackingSession) -> None:
        self.session = session

    def run_forever(self) -> None:
        stop_event = threading.Event()
        try:
            self._run_loop(stop_event)
        except KeyboardInterrupt:
            logger.info("Collector interrupted.")
        finally:
            logger.info("Collector stopped.")

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Run the collector until the provided event is set."""
        try:
            self._run_loop(stop_event)
        finally:
            logger.info("Collector stopped.")

    def tick(self) -> None:
        try:
            self.session.activity_tracker.recognize_activity()
            # Runs the pure time-out check even when nothing new was recognized.
            self.session.break_tracker.process_activities()
        except TrackerError:
            logger.exception("Dropping signal that could not be applied.")

    def _run_loop(self, stop_event: threading.Event) -> None:
        settings = self.session.settings
        logger.info(
            "Starting collector; sampling every %.1fs, breaks after %s of inactivity.",
            settings.sample_interval.total_seconds(),
            settings.inactivity_threshold,
        )
        while not stop_event.is_set():
            self.tick()
            # Sleep in an interruptible manner.
            stop_event.wait(self.session.settings.sample_interval.total_seconds())
