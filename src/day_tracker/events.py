"""Domain events and the in-process bus that delivers them."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Protocol

from .models import EndedActivity, EndedBreak, InstantActivity, RevokedBreak, StartedActivity, StartedBreak

if TYPE_CHECKING:
    from .workday import Workday

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BreakStarted:
    started_break: StartedBreak
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class BreakEnded:
    ended_break: EndedBreak
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class BreakRevoked:
    revoked_break: RevokedBreak
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class PeriodicActivityStarted:
    activity: StartedActivity
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class PeriodicActivityEnded:
    activity: EndedActivity
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class InstantActivityOccurred:
    activity: InstantActivity
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True, slots=True)
class WorkdayUpdated:
    workday: "Workday"
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)


class Publisher(Protocol):
    def publish(self, event: Any) -> None:
        ...


Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe keyed by event type.

    Handlers run on the publishing thread in subscription order. Exceptions
    raised by a handler propagate to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[type, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event_type: type, handler: Handler) -> None:
        with self._lock:
            self._handlers[event_type].append(handler)

    def publish(self, event: Any) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), ()))
        logger.debug("Publishing %s to %d handler(s).", type(event).__name__, len(handlers))
        for handler in handlers:
            handler(event)
