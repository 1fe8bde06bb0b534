"""SQLite database layer for ended activities, breaks and settings."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .errors import BreakNotFound
from .models import EndedActivity, EndedBreak, StateKind, SystemState


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"
DATE_FMT = "%Y-%m-%d"


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS ended_activities (
            id TEXT PRIMARY KEY,
            day TEXT NOT NULL,
            started_at TEXT NOT NULL,
            ended_at TEXT NOT NULL,
            state_kind TEXT NOT NULL,
            state_description TEXT NOT NULL DEFAULT ''
        );

        CREATE INDEX IF NOT EXISTS idx_activities_day
            ON ended_activities(day);

        CREATE TABLE IF NOT EXISTS ended_breaks (
            id TEXT PRIMARY KEY,
            day TEXT NOT NULL,
            started_at TEXT NOT NULL,
            ended_at TEXT NOT NULL,
            description TEXT NOT NULL,
            revoked_at TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_breaks_day
            ON ended_breaks(day);

        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )


def insert_activities(conn: sqlite3.Connection, activities: Iterable[EndedActivity]) -> None:
    conn.executemany(
        """
        INSERT OR IGNORE INTO ended_activities (
            id,
            day,
            started_at,
            ended_at,
            state_kind,
            state_description
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        [
            (
                str(activity.id),
                activity.started_at.strftime(DATE_FMT),
                activity.started_at.strftime(DATETIME_FMT),
                activity.ended_at.strftime(DATETIME_FMT),
                activity.system_state.kind.value,
                activity.system_state.description,
            )
            for activity in activities
        ],
    )


def insert_break(conn: sqlite3.Connection, ended_break: EndedBreak) -> None:
    conn.execute(
        """
        INSERT OR IGNORE INTO ended_breaks (
            id,
            day,
            started_at,
            ended_at,
            description,
            revoked_at
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            str(ended_break.id),
            ended_break.started_at.strftime(DATE_FMT),
            ended_break.started_at.strftime(DATETIME_FMT),
            ended_break.ended_at.strftime(DATETIME_FMT),
            ended_break.description,
            _format_optional(ended_break.revoked_at),
        ),
    )


def mark_break_revoked(
    conn: sqlite3.Connection, break_id: uuid.UUID, revoked_at: datetime
) -> None:
    """Flag a stored break as revoked; each break can be revoked once."""
    cur = conn.execute(
        "UPDATE ended_breaks SET revoked_at = ? WHERE id = ? AND revoked_at IS NULL",
        (revoked_at.strftime(DATETIME_FMT), str(break_id)),
    )
    if cur.rowcount == 0:
        raise BreakNotFound(f"No revocable break found for id={break_id}")


def fetch_activities_for_day(conn: sqlite3.Connection, day: date) -> list[EndedActivity]:
    rows = conn.execute(
        """
        SELECT id, started_at, ended_at, state_kind, state_description
        FROM ended_activities
        WHERE day = ?
        ORDER BY started_at;
        """,
        (day.strftime(DATE_FMT),),
    )
    return [
        EndedActivity(
            started_at=_parse(row["started_at"]),
            ended_at=_parse(row["ended_at"]),
            system_state=SystemState(StateKind(row["state_kind"]), row["state_description"]),
            id=uuid.UUID(row["id"]),
        )
        for row in rows
    ]


def fetch_breaks_for_day(conn: sqlite3.Connection, day: date) -> list[EndedBreak]:
    rows = conn.execute(
        """
        SELECT id, started_at, ended_at, description, revoked_at
        FROM ended_breaks
        WHERE day = ?
        ORDER BY started_at;
        """,
        (day.strftime(DATE_FMT),),
    )
    return [
        EndedBreak(
            id=uuid.UUID(row["id"]),
            started_at=_parse(row["started_at"]),
            ended_at=_parse(row["ended_at"]),
            description=row["description"],
            revoked_at=_parse(row["revoked_at"]) if row["revoked_at"] else None,
        )
        for row in rows
    ]


def fetch_break_totals(
    conn: sqlite3.Connection, start_day: date, end_day_exclusive: date
) -> list[sqlite3.Row]:
    """Return per-day break seconds, split into valid and revoked."""
    return list(
        conn.execute(
            """
            SELECT
                day,
                SUM(CASE WHEN revoked_at IS NULL
                    THEN strftime('%s', ended_at) - strftime('%s', started_at) ELSE 0 END) AS seconds,
                SUM(CASE WHEN revoked_at IS NOT NULL
                    THEN strftime('%s', ended_at) - strftime('%s', started_at) ELSE 0 END) AS revoked_seconds
            FROM ended_breaks
            WHERE day >= ? AND day < ?
            GROUP BY day
            ORDER BY day;
            """,
            (start_day.strftime(DATE_FMT), end_day_exclusive.strftime(DATE_FMT)),
        )
    )


def get_setting(conn: sqlite3.Connection, key: str) -> Optional[str]:
    row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def set_setting(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        """
        INSERT INTO app_settings (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, value),
    )


def _parse(value: str) -> datetime:
    return datetime.strptime(value, DATETIME_FMT)


def _format_optional(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(DATETIME_FMT) if value is not None else None
