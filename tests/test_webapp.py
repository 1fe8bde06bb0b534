import uuid
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from day_tracker.collector import ActivityCollector
from day_tracker.config import TrackerSettings, load_settings
from day_tracker.db import database_connection
from day_tracker.models import SystemState
from day_tracker.session import TrackingSession
from day_tracker.webapp import create_app


@pytest.fixture
def session(clock, db_path):
    session = TrackingSession(TrackerSettings(), clock=clock, db_path=db_path)
    yield session
    session.close()


@pytest.fixture
def client(session, db_path):
    # Used without the context manager so the background collector stays off.
    app = create_app(db_path=db_path, settings=session.settings, session=session)
    return TestClient(app)


@pytest.fixture
def tracked_day(session, clock, day_start):
    collector = ActivityCollector(session)
    for minutes, state in (
        (1, SystemState.focus_on_application("Editor")),
        (30, SystemState.system_locked()),
        (50, SystemState.focus_on_application("Editor")),
    ):
        clock.set(day_start + timedelta(minutes=minutes))
        session.push_state(state)
        collector.tick()
    return session


def test_status(client, db_path):
    response = client.get("/api/status")
    assert response.status_code == 200
    body = response.json()
    assert body["collector_running"] is False
    assert body["on_break"] is False
    assert body["database_path"] == str(db_path)
    assert body["idle_minutes"] == 5.0


class TestSignals:
    def test_focus_signal_is_recognized_on_next_sample(self, client, session):
        response = client.post(
            "/api/signals", json={"kind": "focus-on-application", "description": "Editor"}
        )
        assert response.status_code == 202
        session.activity_tracker.recognize_activity()
        current = client.get("/api/activities").json()["current"]
        assert current["description"] == "Editor"
        assert current["kind"] == "focus-on-application"

    def test_mouse_signal_requires_position(self, client):
        response = client.post("/api/signals", json={"kind": "mouse-moved", "x": 3})
        assert response.status_code == 400

    def test_focus_signal_requires_description(self, client):
        response = client.post("/api/signals", json={"kind": "focus-on-application", "description": "  "})
        assert response.status_code == 400

    def test_unknown_kind_is_rejected(self, client):
        assert client.post("/api/signals", json={"kind": "application-started"}).status_code == 422

    def test_extra_fields_are_rejected(self, client):
        response = client.post("/api/signals", json={"kind": "system-locked", "when": "now"})
        assert response.status_code == 422


def test_workday_reports_metrics(client, tracked_day):
    body = client.get("/api/workday").json()
    assert body["date"] == "2024-03-04"
    assert body["time_of_all_activities_seconds"] == 3000
    assert body["time_of_all_breaks_seconds"] == 1200
    assert body["time_already_actively_worked_seconds"] == 1800


def test_invalid_date_is_rejected(client):
    assert client.get("/api/workday", params={"date": "04/03/2024"}).status_code == 400


class TestBreaks:
    def test_list_and_revoke(self, client, tracked_day):
        breaks = client.get("/api/breaks").json()
        assert breaks["current_break"] is None
        assert len(breaks["breaks"]) == 1
        break_id = breaks["breaks"][0]["id"]
        assert breaks["breaks"][0]["duration_seconds"] == 1200

        response = client.post(f"/api/breaks/{break_id}/revoke")
        assert response.status_code == 200
        assert response.json()["revoked_at"] == "2024-03-04T09:50:00"

        workday = client.get("/api/workday").json()
        assert workday["time_already_actively_worked_seconds"] == 3000

        assert client.post(f"/api/breaks/{break_id}/revoke").status_code == 404

    def test_revoke_with_explicit_time(self, client, tracked_day):
        break_id = client.get("/api/breaks").json()["breaks"][0]["id"]
        response = client.post(
            f"/api/breaks/{break_id}/revoke", json={"revoked_at": "2024-03-04T12:00:00"}
        )
        assert response.json()["revoked_at"] == "2024-03-04T12:00:00"

    def test_unknown_break(self, client):
        assert client.post(f"/api/breaks/{uuid.uuid4()}/revoke").status_code == 404

    def test_malformed_break_id(self, client):
        assert client.post("/api/breaks/not-a-uuid/revoke").status_code == 422


def test_analytics_groups(client, tracked_day):
    body = client.get("/api/analytics").json()
    groups = {group["description"]: group["seconds"] for group in body["groups"]}
    assert groups["Editor"] == 29 * 60
    assert groups["System locked"] == 0


class TestOverview:
    def test_range(self, client, tracked_day):
        body = client.get("/api/overview", params={"start": "2024-03-03", "end": "2024-03-04"}).json()
        assert [day["date"] for day in body["days"]] == ["2024-03-03", "2024-03-04"]
        assert body["stored_breaks"] == [
            {"date": "2024-03-04", "seconds": 1200, "revoked_seconds": 0}
        ]

    def test_end_before_start(self, client):
        response = client.get("/api/overview", params={"start": "2024-03-04", "end": "2024-03-01"})
        assert response.status_code == 400


class TestSettings:
    def test_get_defaults(self, client):
        assert client.get("/api/settings").json() == {
            "sample_seconds": 5.0,
            "idle_minutes": 5.0,
            "workday_hours": 8.0,
            "break_minutes": 50.0,
        }

    def test_partial_update_is_persisted(self, client, session, db_path):
        response = client.put("/api/settings", json={"break_minutes": 30})
        assert response.status_code == 200
        assert response.json()["break_minutes"] == 30.0
        assert response.json()["workday_hours"] == 8.0
        assert session.settings.allowed_break_duration == timedelta(minutes=30)
        with database_connection(db_path) as conn:
            assert load_settings(conn).allowed_break_duration == timedelta(minutes=30)

    def test_threshold_update_reaches_the_break_tracker(self, client, session):
        client.put("/api/settings", json={"idle_minutes": 30})
        assert session.break_tracker.inactivity_threshold == timedelta(minutes=30)
        assert client.get("/api/status").json()["idle_minutes"] == 30.0

    def test_out_of_range_value_is_rejected(self, client):
        assert client.put("/api/settings", json={"sample_seconds": 0.5}).status_code == 422
