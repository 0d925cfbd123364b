from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database  # noqa: E402
from api import app  # noqa: E402
from database import add_staff_profile, create_time_entry, upsert_staffing_ratio  # noqa: E402

ORG = "/api/v1/orgs/org-1"


@pytest.fixture()
def client(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", sessionmaker(bind=engine, expire_on_commit=False, future=True))
    with TestClient(app) as test_client:
        yield test_client
    engine.dispose()


def _shift(start: str, end: str, **extra):
    payload = {"staff_id": "staff-1", "start": start, "end": end}
    payload.update(extra)
    return payload


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_overlapping_shift_returns_conflict(client) -> None:
    created = client.post(f"{ORG}/shifts", json=_shift("2024-01-01T09:00:00Z", "2024-01-01T17:00:00Z", status="published"))
    assert created.status_code == 201
    shift_id = created.json()["id"]

    clash = client.post(f"{ORG}/shifts", json=_shift("2024-01-01T16:00:00Z", "2024-01-01T20:00:00Z"))
    assert clash.status_code == 409
    assert clash.json()["detail"]["shift_ids"] == [shift_id]

    adjacent = client.post(f"{ORG}/shifts", json=_shift("2024-01-01T17:00:00Z", "2024-01-01T20:00:00Z"))
    assert adjacent.status_code == 201

    moved = client.patch(f"{ORG}/shifts/{shift_id}", json={"start": "2024-01-01T08:00:00Z", "end": "2024-01-01T16:00:00Z"})
    assert moved.status_code == 200
    assert moved.json()["start"] == "2024-01-01T08:00:00+00:00"

    listed = client.get(f"{ORG}/shifts", params={"staff_id": "staff-1"}).json()["shifts"]
    assert [shift["id"] for shift in listed][0] == shift_id


def test_bad_payload_and_missing_shift(client) -> None:
    bad = client.post(f"{ORG}/shifts", json=_shift("2024-01-01T09:00:00Z", "2024-01-01T09:00:00Z"))
    assert bad.status_code == 422
    missing = client.patch(f"{ORG}/shifts/nope", json={"notes": "x"})
    assert missing.status_code == 404


def test_pattern_generation_and_publish(client) -> None:
    with database.SessionLocal() as session:
        add_staff_profile(session, "org-1", "Avery Lane", staff_id="staff-1")

    applied = client.put(
        f"{ORG}/staff/staff-1/pattern",
        json={"schedule_config": {"type": "fixed", "fixed_days": [1, 3]}, "weeks": 1, "from_date": "2024-01-01"},
    )
    assert applied.status_code == 200
    assert applied.json()["created"] == 2

    published = client.post(f"{ORG}/shifts/publish", json={"actor": "manager"})
    assert published.status_code == 200
    assert len(published.json()["published"]) == 2
    assert published.json()["conflicts"] == []

    invalid = client.put(f"{ORG}/staff/staff-1/pattern", json={"schedule_config": {"type": "weekly"}})
    assert invalid.status_code == 422


def test_routes_only_reach_records_of_their_organization(client) -> None:
    foreign = client.post(
        "/api/v1/orgs/org-2/shifts",
        json=_shift("2024-01-01T09:00:00Z", "2024-01-01T17:00:00Z", staff_id="staff-9", status="published"),
    )
    shift_id = foreign.json()["id"]
    with database.SessionLocal() as session:
        add_staff_profile(
            session,
            "org-2",
            "Dana Fox",
            schedule_config={"type": "fixed", "fixed_days": [1]},
            staff_id="staff-9",
        )

    assert client.delete(f"{ORG}/shifts/{shift_id}").status_code == 404
    assert client.patch(f"{ORG}/shifts/{shift_id}", json={"notes": "mine"}).status_code == 404
    assert client.delete(f"{ORG}/staff/staff-9/schedule").status_code == 404
    generated = client.post(f"{ORG}/staff/staff-9/pattern/generate", json={"from_date": "2024-01-01"})
    assert generated.status_code == 404

    remaining = client.get("/api/v1/orgs/org-2/shifts").json()["shifts"]
    assert [(shift["id"], shift["notes"]) for shift in remaining] == [(shift_id, "")]
    assert client.get(f"{ORG}/shifts").json()["shifts"] == []


def test_non_integer_weeks_is_unprocessable(client) -> None:
    with database.SessionLocal() as session:
        add_staff_profile(
            session,
            "org-1",
            "Avery Lane",
            schedule_config={"type": "fixed", "fixed_days": [1]},
            staff_id="staff-1",
        )
    generated = client.post(f"{ORG}/staff/staff-1/pattern/generate", json={"weeks": "two"})
    assert generated.status_code == 422
    extended = client.post(f"{ORG}/schedules/extend", json={"weeks": "two"})
    assert extended.status_code == 422


def test_copilot_preview(client) -> None:
    with database.SessionLocal() as session:
        upsert_staffing_ratio(session, "org-1", "Daycare", 15)

    response = client.post(
        f"{ORG}/copilot/generate",
        json={"start_date": "2024-06-03", "end_date": "2024-06-03", "projected_counts": {"Daycare": 45}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["shift_count"] == 3
    assert body["persisted"] is False

    reversed_range = client.post(
        f"{ORG}/copilot/generate",
        json={"start_date": "2024-06-04", "end_date": "2024-06-03", "projected_counts": {}},
    )
    assert reversed_range.status_code == 422


def test_attendance_day_summary(client) -> None:
    client.post(f"{ORG}/shifts", json=_shift("2024-01-01T09:00:00Z", "2024-01-01T17:00:00Z", status="published"))
    with database.SessionLocal() as session:
        create_time_entry(
            session,
            {
                "organization_id": "org-1",
                "staff_id": "staff-1",
                "clock_in": "2024-01-01T08:55:00Z",
                "clock_out": "2024-01-01T18:30:00Z",
            },
        )

    summary = client.get(f"{ORG}/attendance/day", params={"date": "2024-01-01"}).json()
    assert summary["status"] == "complete"
    assert summary["shifts"][0]["pct"] == 100.0

    history = client.get(f"{ORG}/staff/staff-1/attendance/history", params={"days": 3}).json()
    assert len(history["days"]) == 3


def test_active_policy_is_seeded(client) -> None:
    body = client.get("/api/v1/policy/active").json()
    assert body["name"] == "Baseline Roster"
    assert body["params"]["attendance"]["complete_pct"] == 95.0
