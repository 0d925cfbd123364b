from __future__ import annotations

import datetime
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from conflicts import ensure_no_conflict, find_conflicts
from errors import StoreError, ValidationError
from intervals import as_utc, ensure_positive_span
from records import (
    SHIFT_STATUS_CHOICES,
    SHIFT_STATUS_DRAFT,
    SHIFT_STATUS_PUBLISHED,
    ShiftCandidate,
    StaffingRatioRule,
    new_id,
)

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_DATABASE_URL = f"sqlite:///{(DATA_DIR / 'roster.db').as_posix()}"
DATABASE_URL = os.getenv("ROSTER_DATABASE_URL", DEFAULT_DATABASE_URL)
SHIFT_FIELDS = ("organization_id", "staff_id", "start", "end", "role_type", "status", "is_open", "notes")


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    """Metadata for every roster table."""

    pass


class StaffProfile(Base):
    __tablename__ = "staff_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="staff")
    status: Mapped[str] = mapped_column(String(12), nullable=False, default="active")
    schedule_configJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    @property
    def schedule_config(self) -> Optional[Dict[str, Any]]:
        if not self.schedule_configJSON:
            return None
        try:
            value = json.loads(self.schedule_configJSON)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None

    @schedule_config.setter
    def schedule_config(self, config: Optional[Dict[str, Any]]) -> None:
        self.schedule_configJSON = json.dumps(config, sort_keys=True) if config else ""


class Shift(Base):
    __tablename__ = "shifts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    staff_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    start: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    role_type: Mapped[str] = mapped_column(String(60), nullable=False, default="Staff")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SHIFT_STATUS_DRAFT)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    staff_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    clock_in: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    clock_out: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")


class StaffingRatio(Base):
    __tablename__ = "staffing_ratios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    zone_name: Mapped[str] = mapped_column(String(80), nullable=False)
    staff_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    capacity_per_unit: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (UniqueConstraint("organization_id", "zone_name", name="uq_staffing_ratio_zone"),)

    def as_rule(self) -> StaffingRatioRule:
        return StaffingRatioRule(
            zone_name=self.zone_name,
            capacity_per_unit=self.capacity_per_unit,
            staff_count=self.staff_count,
        )


class Policy(Base):
    __tablename__ = "policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(8000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (UniqueConstraint("name", name="uq_policies_name"),)

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            pass
        return {}


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Shift")
    target_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


engine = create_engine(DATABASE_URL, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, future=True)


def init_database() -> None:
    if str(engine.url) == DEFAULT_DATABASE_URL:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(engine)


def _commit(session) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Roster store commit failed: %s", exc)
        raise StoreError(f"Could not save changes: {exc}") from exc


def _parse_datetime(value: Any, label: str) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return as_utc(value)
    if isinstance(value, str) and value.strip():
        try:
            return as_utc(datetime.datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError as exc:
            raise ValidationError(f"{label} must be an ISO 8601 datetime.") from exc
    raise ValidationError(f"{label} is required.")


def _normalize_shift_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce and validate a create/update payload into column values."""
    org_id = payload.get("organization_id")
    if not org_id:
        raise ValidationError("organization_id is required.")
    start = _parse_datetime(payload.get("start"), "start")
    end = _parse_datetime(payload.get("end"), "end")
    # Overnight shifts are entered with an end clock time earlier than the start.
    if end < start:
        end += datetime.timedelta(days=1)
    ensure_positive_span(start, end)
    status = str(payload.get("status") or SHIFT_STATUS_DRAFT).strip().lower()
    if status not in SHIFT_STATUS_CHOICES:
        raise ValidationError(f"Unsupported shift status '{payload.get('status')}'.")
    staff_id = payload.get("staff_id") or None
    is_open = bool(payload.get("is_open", staff_id is None))
    if is_open and staff_id is not None:
        raise ValidationError("An open shift cannot have a staff_id.")
    if not is_open and staff_id is None:
        raise ValidationError("A shift that is not open needs a staff_id.")
    return {
        "organization_id": str(org_id),
        "staff_id": str(staff_id) if staff_id is not None else None,
        "start": start,
        "end": end,
        "role_type": str(payload.get("role_type") or "Staff"),
        "status": status,
        "is_open": is_open,
        "notes": str(payload.get("notes") or ""),
    }


def shift_to_dict(shift: Shift) -> Dict[str, Any]:
    return {
        "id": shift.id,
        "organization_id": shift.organization_id,
        "staff_id": shift.staff_id,
        "start": as_utc(shift.start).isoformat(),
        "end": as_utc(shift.end).isoformat(),
        "role_type": shift.role_type,
        "status": shift.status,
        "is_open": shift.is_open,
        "notes": shift.notes,
    }


def get_shift(session, shift_id: str, org_id: Optional[str] = None) -> Shift:
    """Look a shift up by id; with ``org_id`` a shift of another organization counts as missing."""
    shift = session.get(Shift, shift_id)
    if not shift or (org_id is not None and shift.organization_id != org_id):
        raise StoreError(f"Shift with id {shift_id} was not found.", not_found=True)
    return shift


def list_shifts(
    session,
    org_id: str,
    *,
    staff_id: Optional[str] = None,
    status: Optional[str] = None,
    start_from: Optional[datetime.datetime] = None,
    start_before: Optional[datetime.datetime] = None,
) -> List[Shift]:
    stmt = select(Shift).where(Shift.organization_id == org_id)
    if staff_id is not None:
        stmt = stmt.where(Shift.staff_id == staff_id)
    if status is not None:
        stmt = stmt.where(Shift.status == status.lower())
    shifts = list(session.scalars(stmt))
    if start_from is not None:
        lower = as_utc(start_from)
        shifts = [shift for shift in shifts if as_utc(shift.start) >= lower]
    if start_before is not None:
        upper = as_utc(start_before)
        shifts = [shift for shift in shifts if as_utc(shift.start) < upper]
    shifts.sort(key=lambda shift: (as_utc(shift.start), shift.id))
    return shifts


def _published_roster(session, staff_id: str) -> List[Shift]:
    stmt = select(Shift).where(Shift.staff_id == staff_id, Shift.status == SHIFT_STATUS_PUBLISHED)
    return list(session.scalars(stmt))


def create_shift(session, payload: Dict[str, Any]) -> Shift:
    """Validate against the staff member's current published roster, then commit."""
    values = _normalize_shift_payload(payload)
    if values["staff_id"]:
        candidate = ShiftCandidate(values["staff_id"], values["start"], values["end"])
        ensure_no_conflict(candidate, _published_roster(session, values["staff_id"]))
    shift = Shift(id=str(payload.get("id") or new_id()), **values)
    session.add(shift)
    _commit(session)
    return shift


def create_shifts(session, drafts: Iterable[Any]) -> List[Shift]:
    """Bulk insert generated shifts; drafts are reviewed before publishing so no conflict check."""
    shifts: List[Shift] = []
    for draft in drafts:
        payload = draft.as_dict() if hasattr(draft, "as_dict") else dict(draft)
        values = _normalize_shift_payload(payload)
        shifts.append(Shift(id=str(payload.get("id") or new_id()), **values))
    if not shifts:
        return []
    session.add_all(shifts)
    _commit(session)
    logger.info("Created %d shifts in bulk", len(shifts))
    return shifts


def update_shift(session, shift_id: str, changes: Dict[str, Any], org_id: Optional[str] = None) -> Shift:
    shift = get_shift(session, shift_id, org_id)
    changes = changes or {}
    merged = {field: getattr(shift, field) for field in SHIFT_FIELDS}
    # A shift never moves between organizations.
    for key, value in changes.items():
        if key in SHIFT_FIELDS and key != "organization_id":
            merged[key] = value
    if "staff_id" in changes and "is_open" not in changes:
        # Reassigning decides whether the shift is open.
        merged["is_open"] = not changes["staff_id"]
    elif changes.get("is_open") and "staff_id" not in changes:
        # Opening a shift releases its owner.
        merged["staff_id"] = None
    values = _normalize_shift_payload(merged)
    if values["staff_id"]:
        candidate = ShiftCandidate(values["staff_id"], values["start"], values["end"])
        ensure_no_conflict(candidate, _published_roster(session, values["staff_id"]), exclude_id=shift.id)
    for field, value in values.items():
        setattr(shift, field, value)
    _commit(session)
    return shift


def delete_shift(session, shift_id: str, org_id: Optional[str] = None) -> None:
    shift = session.get(Shift, shift_id)
    if not shift:
        return
    if org_id is not None and shift.organization_id != org_id:
        raise StoreError(f"Shift with id {shift_id} was not found.", not_found=True)
    session.delete(shift)
    _commit(session)


def delete_shifts_for_staff(session, staff_id: str, from_dt: datetime.datetime) -> int:
    """Delete the staff member's shifts starting at or after ``from_dt``; history is kept."""
    lower = as_utc(from_dt)
    stmt = select(Shift).where(Shift.staff_id == staff_id)
    doomed = [shift for shift in session.scalars(stmt) if as_utc(shift.start) >= lower]
    for shift in doomed:
        session.delete(shift)
    _commit(session)
    return len(doomed)


def publish_shifts(session, org_id: str, shift_ids: Optional[Iterable[str]] = None) -> Dict[str, List[str]]:
    """Publish draft shifts one by one; drafts that would overlap the live roster stay drafts."""
    drafts = list_shifts(session, org_id, status=SHIFT_STATUS_DRAFT)
    if shift_ids is not None:
        wanted = {str(shift_id) for shift_id in shift_ids}
        drafts = [shift for shift in drafts if shift.id in wanted]
    published: List[str] = []
    conflicts: List[str] = []
    for shift in drafts:
        if shift.staff_id:
            blocking = find_conflicts(shift, _published_roster(session, shift.staff_id), exclude_id=shift.id)
            if blocking:
                logger.warning(
                    "Shift %s left in draft: overlaps published %s",
                    shift.id,
                    ", ".join(str(other.id) for other in blocking),
                )
                conflicts.append(shift.id)
                continue
        shift.status = SHIFT_STATUS_PUBLISHED
        session.flush()
        published.append(shift.id)
    _commit(session)
    return {"published": published, "conflicts": conflicts}


def create_time_entry(session, payload: Dict[str, Any]) -> TimeEntry:
    org_id = payload.get("organization_id")
    staff_id = payload.get("staff_id")
    if not org_id or not staff_id:
        raise ValidationError("organization_id and staff_id are required.")
    clock_in = _parse_datetime(payload.get("clock_in"), "clock_in")
    clock_out = payload.get("clock_out")
    if clock_out is not None:
        clock_out = _parse_datetime(clock_out, "clock_out")
        if clock_out < clock_in:
            raise ValidationError("clock_out must not be before clock_in.")
    entry = TimeEntry(
        id=str(payload.get("id") or new_id()),
        organization_id=str(org_id),
        staff_id=str(staff_id),
        clock_in=clock_in,
        clock_out=clock_out,
        total_break_minutes=int(payload.get("total_break_minutes") or 0),
        status=str(payload.get("status") or ("active" if clock_out is None else "pending_approval")),
    )
    session.add(entry)
    _commit(session)
    return entry


def list_time_entries(
    session,
    org_id: str,
    *,
    staff_id: Optional[str] = None,
    since: Optional[datetime.datetime] = None,
) -> List[TimeEntry]:
    stmt = select(TimeEntry).where(TimeEntry.organization_id == org_id)
    if staff_id is not None:
        stmt = stmt.where(TimeEntry.staff_id == staff_id)
    entries = list(session.scalars(stmt))
    if since is not None:
        lower = as_utc(since)
        entries = [entry for entry in entries if as_utc(entry.clock_in) >= lower]
    entries.sort(key=lambda entry: (as_utc(entry.clock_in), entry.id))
    return entries


def list_staffing_ratios(session, org_id: str) -> List[StaffingRatio]:
    stmt = select(StaffingRatio).where(StaffingRatio.organization_id == org_id).order_by(StaffingRatio.zone_name)
    return list(session.scalars(stmt))


def upsert_staffing_ratio(
    session,
    org_id: str,
    zone_name: str,
    capacity_per_unit: int,
    staff_count: int = 1,
) -> StaffingRatio:
    if int(capacity_per_unit) <= 0 or int(staff_count) <= 0:
        raise ValidationError("Staffing ratios need a positive capacity and staff count.")
    ratio = session.execute(
        select(StaffingRatio).where(
            StaffingRatio.organization_id == org_id,
            StaffingRatio.zone_name == zone_name,
        )
    ).scalar_one_or_none()
    if ratio is None:
        ratio = StaffingRatio(organization_id=org_id, zone_name=zone_name)
        session.add(ratio)
    ratio.capacity_per_unit = int(capacity_per_unit)
    ratio.staff_count = int(staff_count)
    _commit(session)
    return ratio


def add_staff_profile(
    session,
    org_id: str,
    full_name: str,
    *,
    role: str = "staff",
    schedule_config: Optional[Dict[str, Any]] = None,
    staff_id: Optional[str] = None,
) -> StaffProfile:
    profile = StaffProfile(id=staff_id or new_id(), organization_id=org_id, full_name=full_name, role=role)
    profile.schedule_config = schedule_config
    session.add(profile)
    _commit(session)
    return profile


def get_staff_profile(session, staff_id: str, org_id: Optional[str] = None) -> StaffProfile:
    profile = session.get(StaffProfile, staff_id)
    if not profile or (org_id is not None and profile.organization_id != org_id):
        raise StoreError(f"Staff member {staff_id} was not found.", not_found=True)
    return profile


def list_staff_profiles(session, org_id: str, only_active: bool = True) -> List[StaffProfile]:
    stmt = select(StaffProfile).where(StaffProfile.organization_id == org_id)
    if only_active:
        stmt = stmt.where(StaffProfile.status == "active")
    return list(session.scalars(stmt.order_by(StaffProfile.full_name.asc(), StaffProfile.id.asc())))


def save_schedule_config(
    session,
    staff_id: str,
    config: Optional[Dict[str, Any]],
    org_id: Optional[str] = None,
) -> StaffProfile:
    profile = get_staff_profile(session, staff_id, org_id)
    profile.schedule_config = config
    _commit(session)
    return profile


def upsert_policy(session, name: str, params_dict: Dict, *, edited_by: str = "system") -> Policy:
    existing: Optional[Policy] = session.execute(select(Policy).where(Policy.name == name)).scalars().first()
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        _commit(session)
        session.refresh(existing)
        return existing
    policy = Policy(
        name=name,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(policy)
    _commit(session)
    session.refresh(policy)
    return policy


def get_active_policy(session) -> Optional[Policy]:
    stmt = select(Policy).order_by(Policy.lastEditedAt.desc(), Policy.id.desc())
    return session.scalars(stmt).first()


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "Shift",
    target_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}, default=str),
    )
    session.add(log)
    _commit(session)
    return log
