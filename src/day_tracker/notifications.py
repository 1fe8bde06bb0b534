"""Notifications raised when the active part of a workday is running out."""

from __future__ import annotations

import logging
import threading
from datetime import date, timedelta
from typing import Callable, Optional, Sequence

from .events import EventBus, WorkdayUpdated
from .workday import Workday

logger = logging.getLogger(__name__)


class WorkdayComingToAnEnd:
    name = "workday-coming-to-an-end"
    message = "Less than an hour of active work left today."

    def __init__(self, threshold: timedelta = timedelta(minutes=60)) -> None:
        self.threshold = threshold

    def is_satisfied(self, workday: Workday) -> bool:
        return workday.time_left_to_work_actively < self.threshold


class WorkdayEnded:
    name = "workday-ended"
    message = "Active work for today is (almost) done."

    def __init__(self, threshold: timedelta = timedelta(minutes=10)) -> None:
        self.threshold = threshold

    def is_satisfied(self, workday: Workday) -> bool:
        return workday.time_left_to_work_actively < self.threshold


NotificationCallback = Callable[[str, Workday], None]


class WorkdayNotifier:
    """Fires each specification at most once per day as the workday advances."""

    def __init__(
        self,
        specifications: Optional[Sequence[object]] = None,
        callback: Optional[NotificationCallback] = None,
    ) -> None:
        self._specifications = (
            list(specifications)
            if specifications is not None
            else [WorkdayComingToAnEnd(), WorkdayEnded()]
        )
        self._callback = callback
        self._sent: set[tuple[date, str]] = set()
        self._lock = threading.Lock()

    def register(self, bus: EventBus) -> None:
        bus.subscribe(WorkdayUpdated, self.on_workday_updated)

    def on_workday_updated(self, event: WorkdayUpdated) -> None:
        workday = event.workday
        for specification in self._specifications:
            if not specification.is_satisfied(workday):
                continue
            key = (workday.date, specification.name)
            with self._lock:
                if key in self._sent:
                    continue
                self._sent.add(key)
            logger.info("%s (%s)", specification.message, workday.date.isoformat())
            if self._callback is not None:
                self._callback(specification.name, workday)

    def sent_notifications(self) -> list[tuple[date, str]]:
        with self._lock:
            return sorted(self._sent)
