"""Lightweight FastAPI wrapper around the roster engine and its SQLAlchemy store.

Organization, staff and actor ids arrive as explicit path or payload values; the
API performs no authentication of its own.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

# Ensure flat absolute imports (e.g., "import database") still resolve.
APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import database  # noqa: E402
from attendance import staff_history, team_day_summary  # noqa: E402
from database import (  # noqa: E402
    create_shift,
    delete_shift,
    get_active_policy,
    init_database,
    list_shifts,
    list_time_entries,
    publish_shifts,
    record_audit_log,
    shift_to_dict,
    update_shift,
    upsert_policy,
)
from errors import ConflictError, StoreError, ValidationError  # noqa: E402
from generator.api import generate_coverage  # noqa: E402
from intervals import UTC  # noqa: E402
from policy import attendance_thresholds, ensure_default_policy, load_active_policy  # noqa: E402
from roster import apply_schedule_pattern, clear_staff_schedule, extend_schedules, generate_shifts_from_pattern  # noqa: E402

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_database()
    ensure_default_policy(database.SessionLocal)
    yield


app = FastAPI(title="Roster Engine API", version="0.1", lifespan=lifespan)


def get_db():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _session_factory():
    return database.SessionLocal()


def _parse_date(value: Optional[str], label: str) -> Optional[datetime.date]:
    if value in (None, ""):
        return None
    try:
        return datetime.date.fromisoformat(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{label} must be YYYY-MM-DD")


def _actor(payload: Optional[Dict[str, Any]]) -> str:
    return str((payload or {}).get("actor") or "api").strip() or "api"


def _raise_http(exc: Exception) -> None:
    if isinstance(exc, ConflictError):
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "staff_id": exc.staff_id, "shift_ids": exc.shift_ids},
        ) from exc
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if isinstance(exc, StoreError):
        raise HTTPException(status_code=404 if exc.not_found else 500, detail=str(exc)) from exc
    raise exc


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/v1/orgs/{org_id}/shifts")
def org_shifts(
    org_id: str,
    staff_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db=Depends(get_db),
) -> JSONResponse:
    shifts = list_shifts(db, org_id, staff_id=staff_id, status=status)
    return JSONResponse(content=jsonable_encoder({"shifts": [shift_to_dict(shift) for shift in shifts]}))


@app.post("/api/v1/orgs/{org_id}/shifts")
def create_shift_endpoint(org_id: str, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    data = dict(payload)
    data["organization_id"] = org_id
    try:
        shift = create_shift(db, data)
    except (ConflictError, ValidationError, StoreError) as exc:
        _raise_http(exc)
    record_audit_log(db, user_id=_actor(payload), action="SHIFT_CREATE", target_id=shift.id)
    return JSONResponse(status_code=201, content=jsonable_encoder(shift_to_dict(shift)))


@app.patch("/api/v1/orgs/{org_id}/shifts/{shift_id}")
def update_shift_endpoint(org_id: str, shift_id: str, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    changes = {key: value for key, value in payload.items() if key not in {"actor", "organization_id"}}
    try:
        shift = update_shift(db, shift_id, changes, org_id=org_id)
    except (ConflictError, ValidationError, StoreError) as exc:
        _raise_http(exc)
    record_audit_log(db, user_id=_actor(payload), action="SHIFT_UPDATE", target_id=shift.id, payload=changes)
    return JSONResponse(content=jsonable_encoder(shift_to_dict(shift)))


@app.delete("/api/v1/orgs/{org_id}/shifts/{shift_id}")
def delete_shift_endpoint(org_id: str, shift_id: str, actor: str = Query("api"), db=Depends(get_db)) -> JSONResponse:
    try:
        delete_shift(db, shift_id, org_id=org_id)
    except StoreError as exc:
        _raise_http(exc)
    record_audit_log(db, user_id=actor, action="SHIFT_DELETE", target_id=shift_id)
    return JSONResponse(content={"deleted": shift_id})


@app.post("/api/v1/orgs/{org_id}/shifts/publish")
def publish_endpoint(org_id: str, payload: Dict[str, Any] | None = None, db=Depends(get_db)) -> JSONResponse:
    shift_ids = (payload or {}).get("shift_ids")
    try:
        result = publish_shifts(db, org_id, shift_ids)
    except StoreError as exc:
        _raise_http(exc)
    record_audit_log(
        db,
        user_id=_actor(payload),
        action="SCHEDULE_PUBLISH",
        target_type="Organization",
        target_id=org_id,
        payload={"published": len(result["published"]), "conflicts": len(result["conflicts"])},
    )
    return JSONResponse(content=jsonable_encoder(result))


@app.put("/api/v1/orgs/{org_id}/staff/{staff_id}/pattern")
def apply_pattern_endpoint(org_id: str, staff_id: str, payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    config = payload.get("schedule_config")
    if not isinstance(config, dict):
        raise HTTPException(status_code=400, detail="schedule_config is required")
    try:
        result = apply_schedule_pattern(
            db,
            staff_id,
            org_id,
            config,
            weeks=payload.get("weeks"),
            from_date=_parse_date(payload.get("from_date"), "from_date"),
            actor=_actor(payload),
        )
    except (ValidationError, StoreError) as exc:
        _raise_http(exc)
    return JSONResponse(content=jsonable_encoder(result))


@app.post("/api/v1/orgs/{org_id}/staff/{staff_id}/pattern/generate")
def generate_pattern_endpoint(
    org_id: str,
    staff_id: str,
    payload: Dict[str, Any] | None = None,
    db=Depends(get_db),
) -> JSONResponse:
    payload = payload or {}
    try:
        result = generate_shifts_from_pattern(
            db,
            staff_id,
            org_id,
            weeks=payload.get("weeks"),
            from_date=_parse_date(payload.get("from_date"), "from_date"),
            actor=_actor(payload),
        )
    except (ValidationError, StoreError) as exc:
        _raise_http(exc)
    return JSONResponse(content=jsonable_encoder(result))


@app.delete("/api/v1/orgs/{org_id}/staff/{staff_id}/schedule")
def clear_schedule_endpoint(org_id: str, staff_id: str, actor: str = Query("api"), db=Depends(get_db)) -> JSONResponse:
    try:
        result = clear_staff_schedule(db, staff_id, actor=actor, org_id=org_id)
    except StoreError as exc:
        _raise_http(exc)
    return JSONResponse(content=jsonable_encoder(result))


@app.post("/api/v1/orgs/{org_id}/schedules/extend")
def extend_endpoint(org_id: str, payload: Dict[str, Any] | None = None, db=Depends(get_db)) -> JSONResponse:
    payload = payload or {}
    try:
        result = extend_schedules(db, org_id, weeks=payload.get("weeks"), actor=_actor(payload))
    except (ValidationError, StoreError) as exc:
        _raise_http(exc)
    return JSONResponse(content=jsonable_encoder(result))


@app.post("/api/v1/orgs/{org_id}/copilot/generate")
def copilot_endpoint(org_id: str, payload: Dict[str, Any]) -> JSONResponse:
    start_date = _parse_date(payload.get("start_date"), "start_date")
    end_date = _parse_date(payload.get("end_date"), "end_date")
    if start_date is None or end_date is None:
        raise HTTPException(status_code=400, detail="start_date and end_date are required")
    counts = payload.get("projected_counts") or {}
    if not isinstance(counts, dict):
        raise HTTPException(status_code=400, detail="projected_counts must be an object")
    try:
        result = generate_coverage(
            _session_factory,
            org_id,
            start_date,
            end_date,
            counts,
            _actor(payload),
            persist=bool(payload.get("persist")),
            preview_limit=payload.get("preview_limit"),
        )
    except (ValidationError, StoreError) as exc:
        _raise_http(exc)
    return JSONResponse(content=jsonable_encoder(result))


@app.get("/api/v1/orgs/{org_id}/attendance/day")
def team_day_endpoint(org_id: str, date: Optional[str] = Query(None), db=Depends(get_db)) -> JSONResponse:
    now = datetime.datetime.now(UTC)
    day = _parse_date(date, "date") or now.date()
    window_start = datetime.datetime.combine(day, datetime.time.min, tzinfo=UTC)
    window_end = window_start + datetime.timedelta(days=1)
    shifts = list_shifts(db, org_id, start_from=window_start, start_before=window_end)
    entries = list_time_entries(db, org_id, since=window_start)
    complete_pct, good_pct = attendance_thresholds(load_active_policy(db))
    summary = team_day_summary(shifts, entries, day, now, complete_pct=complete_pct, good_pct=good_pct)
    return JSONResponse(content=jsonable_encoder(summary))


@app.get("/api/v1/orgs/{org_id}/staff/{staff_id}/attendance/history")
def staff_history_endpoint(
    org_id: str,
    staff_id: str,
    days: Optional[int] = Query(None, ge=1, le=366),
    db=Depends(get_db),
) -> JSONResponse:
    now = datetime.datetime.now(UTC)
    policy = load_active_policy(db)
    days = days or int(policy["attendance"].get("history_days", 14))
    window_start = datetime.datetime.combine(now.date() - datetime.timedelta(days=days - 1), datetime.time.min, tzinfo=UTC)
    shifts = list_shifts(db, org_id, staff_id=staff_id, start_from=window_start)
    entries = list_time_entries(db, org_id, staff_id=staff_id, since=window_start)
    complete_pct, good_pct = attendance_thresholds(policy)
    points = staff_history(staff_id, shifts, entries, days, now=now, complete_pct=complete_pct, good_pct=good_pct)
    return JSONResponse(content=jsonable_encoder({"staff_id": staff_id, "days": points}))


@app.get("/api/v1/policy/active")
def active_policy(db=Depends(get_db)) -> JSONResponse:
    policy = get_active_policy(db)
    if not policy:
        raise HTTPException(status_code=404, detail="No active policy found")
    payload = {
        "id": policy.id,
        "name": policy.name,
        "params": policy.params_dict(),
        "lastEditedBy": policy.lastEditedBy,
        "lastEditedAt": policy.lastEditedAt.isoformat() if policy.lastEditedAt else None,
    }
    return JSONResponse(content=jsonable_encoder(payload))


@app.put("/api/v1/policy/active")
def set_active_policy(payload: Dict[str, Any], db=Depends(get_db)) -> JSONResponse:
    name = payload.get("name")
    params = payload.get("params") or {}
    actor = _actor(payload)
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    try:
        policy = upsert_policy(db, name=name, params_dict=params, edited_by=actor)
    except StoreError as exc:
        _raise_http(exc)
    record_audit_log(db, user_id=actor, action="POLICY_EDIT", target_type="Policy", target_id=str(policy.id), payload={"name": policy.name})
    return JSONResponse(
        content=jsonable_encoder(
            {
                "id": policy.id,
                "name": policy.name,
                "params": policy.params_dict(),
                "lastEditedBy": policy.lastEditedBy,
                "lastEditedAt": policy.lastEditedAt.isoformat() if policy.lastEditedAt else None,
            }
        )
    )
