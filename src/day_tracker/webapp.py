"""FastAPI application exposing the tracker's query, ingest and revoke API."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .collector import ActivityCollector
from .config import TrackerSettings, persist_settings
from .db import database_connection, fetch_break_totals
from .errors import BreakNotFound
from .models import EndedActivity, EndedBreak, StartedActivity, SystemState
from .paths import get_db_path
from .session import TrackingSession

logger = logging.getLogger(__name__)


class CollectorRunner:
    """Manage the activity collector in a background thread."""

    def __init__(self, session: TrackingSession) -> None:
        self._session = session
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            collector = ActivityCollector(self._session)
            thread = threading.Thread(
                target=collector.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Collector background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Collector background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())


class SignalPayload(BaseModel):
    kind: Literal["focus-on-application", "system-locked", "mouse-moved"]
    description: Optional[str] = None
    x: Optional[int] = None
    y: Optional[int] = None

    model_config = ConfigDict(extra="forbid")


class RevokePayload(BaseModel):
    revoked_at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class SettingsPayload(BaseModel):
    sample_seconds: Optional[float] = Field(default=None, ge=1.0)
    idle_minutes: Optional[float] = Field(default=None, ge=0.5)
    workday_hours: Optional[float] = Field(default=None, gt=0)
    break_minutes: Optional[float] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    session: Optional[TrackingSession] = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    Settings default to the ones stored in the database.
    """
    resolved_db_path = Path(db_path or get_db_path())
    resolved_session = session or TrackingSession.open(resolved_db_path, settings)
    runner = CollectorRunner(resolved_session)

    app = FastAPI(title="Day Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.session = resolved_session
    app.state.collector_runner = runner

    @app.on_event("startup")
    async def _startup() -> None:
        runner.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runner.stop()
        resolved_session.close()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        session: TrackingSession = request.app.state.session
        open_break = session.break_tracker.current_break
        return {
            "collector_running": request.app.state.collector_runner.is_running(),
            "database_path": str(request.app.state.db_path),
            "sample_seconds": session.settings.sample_interval.total_seconds(),
            "idle_minutes": session.break_tracker.inactivity_threshold.total_seconds() / 60.0,
            "on_break": open_break is not None,
        }

    @app.post("/api/signals", status_code=202)
    def push_signal(payload: SignalPayload, request: Request) -> Dict[str, Any]:
        state = _payload_to_state(payload)
        request.app.state.session.push_state(state)
        return {"kind": state.kind.value, "description": state.description}

    @app.get("/api/workday")
    def workday(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date, request.app.state.session)
        return request.app.state.session.workday_for(target_day).to_dict()

    @app.get("/api/breaks")
    def breaks(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        session: TrackingSession = request.app.state.session
        target_day = _parse_date(date, session)
        current = session.break_tracker.current_break if target_day == session.today() else None
        return {
            "date": target_day.isoformat(),
            "current_break": (
                {
                    "id": str(current.id),
                    "started_at": current.started_at.isoformat(),
                    "description": current.description,
                }
                if current
                else None
            ),
            "breaks": [_break_payload(item) for item in session.breaks_for(target_day)],
        }

    @app.post("/api/breaks/{break_id}/revoke")
    def revoke_break(
        break_id: uuid.UUID, request: Request, payload: Optional[RevokePayload] = None
    ) -> Dict[str, Any]:
        revoked_at = payload.revoked_at if payload else None
        try:
            revoked = request.app.state.session.revoke_break(break_id, revoked_at)
        except BreakNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _break_payload(revoked.ended_break)

    @app.get("/api/activities")
    def activities(request: Request) -> Dict[str, Any]:
        tracker = request.app.state.session.activity_tracker
        return {
            "current": _started_activity_payload(tracker.get_current_activity()),
            "ended": [_activity_payload(item) for item in tracker.get_ended_activities()],
        }

    @app.get("/api/analytics")
    def analytics(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        session: TrackingSession = request.app.state.session
        target_day = _parse_date(date, session)
        groups = session.grouped_activities_for(target_day)
        return {
            "date": target_day.isoformat(),
            "groups": [
                {
                    "description": group.description,
                    "seconds": group.duration.total_seconds(),
                    "occurrences": len(group.get_included_occurrences()),
                }
                for group in groups
            ],
        }

    @app.get("/api/overview")
    def overview(
        request: Request,
        start: Optional[str] = Query(
            default=None,
            description="Start date in YYYY-MM-DD format (inclusive).",
        ),
        end: Optional[str] = Query(
            default=None,
            description="End date in YYYY-MM-DD format (inclusive).",
        ),
    ) -> Dict[str, Any]:
        session: TrackingSession = request.app.state.session
        start_day = _parse_date(start, session)
        end_day = _parse_date(end, session) if end else start_day
        if end_day < start_day:
            raise HTTPException(
                status_code=400, detail="end date must be on or after start date"
            )
        with database_connection(request.app.state.db_path) as conn:
            rows = fetch_break_totals(conn, start_day, end_day + timedelta(days=1))
        days = []
        day = start_day
        while day <= end_day:
            days.append(session.workday_for(day).to_dict())
            day += timedelta(days=1)
        return {
            "start": start_day.isoformat(),
            "end": end_day.isoformat(),
            "days": days,
            "stored_breaks": [
                {
                    "date": row["day"],
                    "seconds": int(row["seconds"] or 0),
                    "revoked_seconds": int(row["revoked_seconds"] or 0),
                }
                for row in rows
            ],
        }

    @app.get("/api/settings")
    def get_settings(request: Request) -> Dict[str, Any]:
        return _settings_payload(request.app.state.session.settings)

    @app.put("/api/settings")
    def update_settings(payload: SettingsPayload, request: Request) -> Dict[str, Any]:
        session: TrackingSession = request.app.state.session
        updates = payload.model_dump(exclude_unset=True, exclude_none=True)
        current = session.settings
        updated = TrackerSettings.from_intervals(
            sample_seconds=updates.get("sample_seconds", current.sample_interval.total_seconds()),
            idle_minutes=updates.get(
                "idle_minutes", current.inactivity_threshold.total_seconds() / 60.0
            ),
            workday_hours=updates.get(
                "workday_hours", current.workday_duration.total_seconds() / 3600.0
            ),
            break_minutes=updates.get(
                "break_minutes", current.allowed_break_duration.total_seconds() / 60.0
            ),
        )
        with database_connection(request.app.state.db_path) as conn:
            persist_settings(conn, updated)
        # Today's snapshot keeps its workday definition; the rest applies at once.
        session.apply_settings(updated)
        return _settings_payload(updated)

    return app


def _parse_date(value: Optional[str], session: TrackingSession) -> date:
    if not value:
        return session.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _payload_to_state(payload: SignalPayload) -> SystemState:
    if payload.kind == "system-locked":
        return SystemState.system_locked()
    if payload.kind == "mouse-moved":
        if payload.x is None or payload.y is None:
            raise HTTPException(status_code=400, detail="x and y are required for mouse-moved")
        return SystemState.mouse_moved(payload.x, payload.y)
    description = (payload.description or "").strip()
    if not description:
        raise HTTPException(status_code=400, detail="description is required for focus-on-application")
    return SystemState.focus_on_application(description)


def _break_payload(item: EndedBreak) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "started_at": item.started_at.isoformat(),
        "ended_at": item.ended_at.isoformat(),
        "description": item.description,
        "duration_seconds": item.break_duration.total_seconds(),
        "revoked_at": item.revoked_at.isoformat() if item.revoked_at else None,
    }


def _activity_payload(item: EndedActivity) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "started_at": item.started_at.isoformat(),
        "ended_at": item.ended_at.isoformat(),
        "kind": item.system_state.kind.value,
        "description": item.description,
        "duration_seconds": item.duration.total_seconds(),
    }


def _started_activity_payload(item: StartedActivity) -> Dict[str, Any]:
    return {
        "id": str(item.id),
        "started_at": item.started_at.isoformat(),
        "kind": item.system_state.kind.value,
        "description": item.system_state.description,
    }


def _settings_payload(settings: TrackerSettings) -> Dict[str, Any]:
    return {
        "sample_seconds": settings.sample_interval.total_seconds(),
        "idle_minutes": settings.inactivity_threshold.total_seconds() / 60.0,
        "workday_hours": settings.workday_duration.total_seconds() / 3600.0,
        "break_minutes": settings.allowed_break_duration.total_seconds() / 60.0,
    }
