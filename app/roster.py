"""Roster operations built on the pattern expander and the conflict rule.

Every generated shift that names a staff member is checked against that member's
published shifts before it is written. Published output that would overlap is
skipped; draft output is written but reported, since drafts are reviewed before
they are published.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, List, Optional

from conflicts import find_conflicts
from database import (
    create_shifts,
    delete_shifts_for_staff,
    get_staff_profile,
    list_shifts,
    list_staff_profiles,
    record_audit_log,
    save_schedule_config,
)
from errors import ValidationError
from intervals import UTC, as_utc
from patterns import (
    PATTERN_FIXED,
    PATTERN_ROTATING,
    expand,
    next_generation_start,
    parse_schedule_config,
    pin_anchor,
)
from policy import load_active_policy, pattern_settings
from records import SHIFT_STATUS_PUBLISHED, ShiftDraft

logger = logging.getLogger(__name__)


def _conflict_payload(draft: ShiftDraft, blocking: List[Any]) -> Dict[str, Any]:
    return {
        "start": as_utc(draft.start).isoformat(),
        "end": as_utc(draft.end).isoformat(),
        "blocking_shift_ids": [str(shift.id) for shift in blocking],
    }


def _coerce_weeks(weeks: Any, default: int) -> int:
    if weeks is None:
        return default
    try:
        return int(weeks)
    except (TypeError, ValueError) as exc:
        raise ValidationError("weeks must be an integer.") from exc


def generate_shifts_from_pattern(
    session,
    staff_id: str,
    org_id: str,
    *,
    config: Optional[Dict[str, Any]] = None,
    weeks: Optional[int] = None,
    from_date: Optional[datetime.date] = None,
    actor: str = "system",
    policy: Optional[Dict] = None,
) -> Dict[str, Any]:
    """Expand the staff member's pattern and write the resulting shifts."""
    profile = get_staff_profile(session, staff_id, org_id)
    stored = profile.schedule_config
    config = config if config is not None else stored
    if not config:
        raise ValidationError(f"{profile.full_name} has no schedule pattern.")
    settings = pattern_settings(policy if policy is not None else load_active_policy(session))
    start_day = from_date or datetime.datetime.now(UTC).date()
    weeks = _coerce_weeks(weeks, settings["default_weeks"])
    pinned = pin_anchor(config, start_day)
    spec = parse_schedule_config(
        pinned,
        default_start=settings["default_start"],
        default_end=settings["default_end"],
    )
    if pinned is not config and config == stored:
        # Later extensions must continue the same rotation.
        save_schedule_config(session, staff_id, pinned, org_id)
    drafts = list(
        expand(
            spec,
            staff_id,
            org_id,
            start_day,
            weeks,
            status=settings["status"],
            role_type=settings["role_type"],
        )
    )

    roster: List[Any] = list_shifts(session, org_id, staff_id=staff_id, status=SHIFT_STATUS_PUBLISHED)
    accepted: List[ShiftDraft] = []
    conflicts: List[Dict[str, Any]] = []
    skipped = 0
    for draft in drafts:
        blocking = find_conflicts(draft, roster)
        if blocking:
            conflicts.append(_conflict_payload(draft, blocking))
            if draft.status == SHIFT_STATUS_PUBLISHED:
                skipped += 1
                continue
        accepted.append(draft)
        if draft.status == SHIFT_STATUS_PUBLISHED:
            roster.append(draft)

    created = create_shifts(session, accepted)
    if conflicts:
        logger.warning(
            "%d generated shifts for staff %s overlap published shifts (%d skipped)",
            len(conflicts),
            staff_id,
            skipped,
        )
    logger.info("Generated %d shifts for staff %s from %s", len(created), staff_id, start_day.isoformat())
    record_audit_log(
        session,
        user_id=actor,
        action="PATTERN_GENERATE",
        target_type="Staff",
        target_id=staff_id,
        payload={"from": start_day.isoformat(), "weeks": weeks, "created": len(created), "skipped": skipped},
    )
    return {
        "staff_id": staff_id,
        "from": start_day.isoformat(),
        "weeks": weeks,
        "created": len(created),
        "shift_ids": [shift.id for shift in created],
        "skipped": skipped,
        "conflicts": conflicts,
    }


def apply_schedule_pattern(
    session,
    staff_id: str,
    org_id: str,
    config: Dict[str, Any],
    *,
    weeks: Optional[int] = None,
    from_date: Optional[datetime.date] = None,
    actor: str = "system",
    policy: Optional[Dict] = None,
) -> Dict[str, Any]:
    """Store a new pattern on the staff profile and generate its first weeks."""
    start_day = from_date or datetime.datetime.now(UTC).date()
    config = pin_anchor(config, start_day)
    # Parse first so a malformed pattern is never stored.
    parse_schedule_config(config)
    save_schedule_config(session, staff_id, config, org_id)
    return generate_shifts_from_pattern(
        session,
        staff_id,
        org_id,
        config=config,
        weeks=weeks,
        from_date=start_day,
        actor=actor,
        policy=policy,
    )


def extend_schedules(
    session,
    org_id: str,
    *,
    weeks: Optional[int] = None,
    today: Optional[datetime.date] = None,
    actor: str = "system",
) -> Dict[str, Any]:
    """Generate the next weeks for everyone with a pattern, starting after their latest shift."""
    today = today or datetime.datetime.now(UTC).date()
    policy = load_active_policy(session)
    weeks = _coerce_weeks(weeks, pattern_settings(policy)["default_weeks"])
    results: List[Dict[str, Any]] = []
    errors: List[Dict[str, str]] = []
    for profile in list_staff_profiles(session, org_id):
        config = profile.schedule_config
        if not config or config.get("type") not in {PATTERN_FIXED, PATTERN_ROTATING}:
            continue
        existing = list_shifts(session, org_id, staff_id=profile.id)
        from_date = next_generation_start(existing, profile.id, default=today)
        try:
            results.append(
                generate_shifts_from_pattern(
                    session,
                    profile.id,
                    org_id,
                    config=config,
                    weeks=weeks,
                    from_date=from_date,
                    actor=actor,
                    policy=policy,
                )
            )
        except ValidationError as exc:
            logger.warning("Skipping schedule extension for staff %s: %s", profile.id, exc)
            errors.append({"staff_id": profile.id, "message": str(exc)})
    return {
        "staff_count": len(results),
        "created": sum(result["created"] for result in results),
        "results": results,
        "errors": errors,
    }


def clear_staff_schedule(
    session,
    staff_id: str,
    *,
    from_dt: Optional[datetime.datetime] = None,
    actor: str = "system",
    org_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Delete upcoming shifts and empty the pattern so it does not regenerate."""
    profile = get_staff_profile(session, staff_id, org_id)
    from_dt = from_dt or datetime.datetime.now(UTC)
    deleted = delete_shifts_for_staff(session, staff_id, from_dt)
    config = dict(profile.schedule_config or {})
    config.update({"type": PATTERN_FIXED, "fixed_days": []})
    save_schedule_config(session, staff_id, config)
    record_audit_log(
        session,
        user_id=actor,
        action="SCHEDULE_CLEAR",
        target_type="Staff",
        target_id=staff_id,
        payload={"from": as_utc(from_dt).isoformat(), "deleted": deleted},
    )
    logger.info("Cleared %d upcoming shifts for staff %s", deleted, staff_id)
    return {"staff_id": staff_id, "deleted": deleted, "schedule_config": config}
