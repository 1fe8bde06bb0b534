"""Writes ended activities and break changes to SQLite as events arrive."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .db import insert_activities, insert_break, mark_break_revoked, open_database
from .events import BreakEnded, BreakRevoked, EventBus, PeriodicActivityEnded

logger = logging.getLogger(__name__)


class EventPersister:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn = open_database(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()

    def register(self, bus: EventBus) -> None:
        bus.subscribe(PeriodicActivityEnded, self.on_activity_ended)
        bus.subscribe(BreakEnded, self.on_break_ended)
        bus.subscribe(BreakRevoked, self.on_break_revoked)

    def on_activity_ended(self, event: PeriodicActivityEnded) -> None:
        with self._lock:
            insert_activities(self._conn, [event.activity])

    def on_break_ended(self, event: BreakEnded) -> None:
        with self._lock:
            insert_break(self._conn, event.ended_break)
        logger.debug("Persisted break %s.", event.ended_break.id)

    def on_break_revoked(self, event: BreakRevoked) -> None:
        revoked = event.revoked_break
        with self._lock:
            mark_break_revoked(self._conn, revoked.break_id, revoked.revoked_at)
        logger.debug("Persisted revocation of break %s.", revoked.break_id)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
