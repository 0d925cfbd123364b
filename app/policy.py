from __future__ import annotations

import copy
import datetime
from typing import Any, Dict, List, Tuple

from database import get_active_policy, upsert_policy
from errors import ValidationError
from intervals import parse_clock
from records import SHIFT_STATUS_CHOICES, SHIFT_STATUS_DRAFT, StaffingRule


BASELINE_POLICY: Dict[str, Any] = {
    "name": "Baseline Roster",
    "patterns": {
        "default_start": "09:00",
        "default_end": "17:00",
        "default_weeks": 4,
        "status": SHIFT_STATUS_DRAFT,
        "role_type": "Staff",
    },
    "copilot": {
        "default_window": {"start": "08:00", "end": "17:00"},
        "zone_windows": {},
        "rules": [],
        "preview_limit": 5,
    },
    "attendance": {
        "complete_pct": 95.0,
        "good_pct": 80.0,
        "history_days": 14,
    },
}


def build_default_policy() -> Dict[str, Any]:
    """Return a deepcopy so callers can mutate the policy safely."""
    return copy.deepcopy(BASELINE_POLICY)


def _deep_update(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_update(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _normalize_policy(policy: Dict) -> Dict:
    """Merge stored overrides over the baseline so every key the engine reads exists."""
    if not isinstance(policy, dict):
        policy = {}
    normalized = _deep_update(BASELINE_POLICY, policy)
    patterns = normalized["patterns"]
    status = str(patterns.get("status") or SHIFT_STATUS_DRAFT).strip().lower()
    patterns["status"] = status if status in SHIFT_STATUS_CHOICES else SHIFT_STATUS_DRAFT
    try:
        patterns["default_weeks"] = max(0, int(patterns.get("default_weeks", 4)))
    except (TypeError, ValueError):
        patterns["default_weeks"] = BASELINE_POLICY["patterns"]["default_weeks"]
    attendance = normalized["attendance"]
    for key in ("complete_pct", "good_pct"):
        try:
            attendance[key] = float(attendance.get(key))
        except (TypeError, ValueError):
            attendance[key] = BASELINE_POLICY["attendance"][key]
    return normalized


def load_active_policy(conn) -> Dict:
    """Return the active policy payload as a dict."""
    if conn is None:
        return _normalize_policy({})
    if callable(conn):
        with conn() as session:
            policy = get_active_policy(session)
            return _normalize_policy(policy.params_dict() if policy else {})
    policy = get_active_policy(conn)
    return _normalize_policy(policy.params_dict() if policy else {})


def ensure_default_policy(session_factory) -> None:
    """Seed the baseline policy exactly once."""

    with session_factory() as session:
        if get_active_policy(session):
            return
        spec = build_default_policy()
        name = spec.get("name", "Baseline Roster")
        params = {key: value for key, value in spec.items() if key != "name"}
        upsert_policy(session, name, params, edited_by="system")


def pattern_settings(policy: Dict) -> Dict[str, Any]:
    return _normalize_policy(policy)["patterns"]


def attendance_thresholds(policy: Dict) -> Tuple[float, float]:
    cfg = _normalize_policy(policy)["attendance"]
    return cfg["complete_pct"], cfg["good_pct"]


def zone_window(policy: Dict, zone_name: str) -> Tuple[datetime.time, datetime.time]:
    """Return the coverage window for a zone, falling back to the default window."""
    copilot = _normalize_policy(policy)["copilot"]
    windows = copilot.get("zone_windows") or {}
    window = windows.get(zone_name) if isinstance(windows, dict) else None
    if not isinstance(window, dict):
        window = copilot["default_window"]
    start_time = parse_clock(window.get("start", "08:00"))
    end_time = parse_clock(window.get("end", "17:00"))
    if start_time == end_time:
        raise ValidationError(f"Coverage window for {zone_name} is empty.")
    return start_time, end_time


def staffing_rules(policy: Dict) -> List[StaffingRule]:
    rules: List[StaffingRule] = []
    for entry in _normalize_policy(policy)["copilot"].get("rules") or []:
        if not isinstance(entry, dict):
            continue
        rules.append(
            StaffingRule(
                name=str(entry.get("name") or entry.get("role_type") or "Rule"),
                role_type=str(entry.get("role_type") or entry.get("name") or "Staff"),
                headcount=int(entry.get("headcount", 0) or 0),
                start_time=parse_clock(entry.get("start", "08:00")),
                end_time=parse_clock(entry.get("end", "17:00")),
            )
        )
    return rules
