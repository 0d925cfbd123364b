from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List

from sqlalchemy import select

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import database  # noqa: E402
from database import StaffProfile, init_database, upsert_staffing_ratio  # noqa: E402
from patterns import parse_schedule_config  # noqa: E402
from policy import ensure_default_policy  # noqa: E402

DEMO_ORG_ID = "demo-org"

SAMPLE_RATIOS: List[Dict] = [
    {"zone_name": "Daycare", "capacity_per_unit": 15, "staff_count": 1},
    {"zone_name": "Boarding", "capacity_per_unit": 20, "staff_count": 1},
    {"zone_name": "Suites", "capacity_per_unit": 8, "staff_count": 2},
]

SAMPLE_STAFF: List[Dict] = [
    {
        "name": "Alex Nguyen",
        "role": "manager",
        "schedule_config": {"type": "fixed", "fixed_days": [1, 2, 3, 4, 5]},
    },
    {
        "name": "Maya Thompson",
        "schedule_config": {
            "type": "fixed",
            "fixed_days": [0, 5, 6],
            "shift_start_time": "07:00",
            "shift_end_time": "15:00",
        },
    },
    {
        "name": "Jordan Ellis",
        "schedule_config": {
            "type": "rotating",
            "days_on": 4,
            "days_off": 4,
            "anchor_date": "2024-01-01",
            "shift_start_time": "07:00",
            "shift_end_time": "19:00",
        },
    },
    {
        "name": "Sofia Ramirez",
        "schedule_config": {
            "type": "rotating",
            "days_on": 4,
            "days_off": 4,
            "anchor_date": "2024-01-05",
            "shift_start_time": "07:00",
            "shift_end_time": "19:00",
        },
    },
    {
        "name": "Logan Patel",
        "schedule_config": {
            "type": "fixed",
            "fixed_days": [1, 3, 5],
            "shift_start_time": "19:00",
            "shift_end_time": "07:00",
        },
    },
    # No pattern yet; picks up open shifts.
    {"name": "Harper Reed"},
]


def seed_roster(session_factory=None, org_id: str = DEMO_ORG_ID) -> Dict[str, int]:
    """Create or refresh the demo staff and ratios; safe to run repeatedly."""
    if session_factory is None:
        init_database()
        session_factory = database.SessionLocal
    ensure_default_policy(session_factory)
    created = 0
    refreshed = 0
    with session_factory() as session:
        for entry in SAMPLE_STAFF:
            config = entry.get("schedule_config")
            if config:
                parse_schedule_config(config)
            stmt = select(StaffProfile).where(
                StaffProfile.organization_id == org_id,
                StaffProfile.full_name == entry["name"],
            )
            profile = session.scalars(stmt).first()
            if not profile:
                profile = StaffProfile(organization_id=org_id, full_name=entry["name"])
                session.add(profile)
                created += 1
            else:
                refreshed += 1
            profile.role = entry.get("role", "staff")
            profile.status = "active"
            profile.schedule_config = config
        session.commit()
        for ratio in SAMPLE_RATIOS:
            upsert_staffing_ratio(session, org_id, **ratio)
    print(f"Seed complete. Created {created} staff profiles, refreshed {refreshed}, {len(SAMPLE_RATIOS)} ratios.")
    return {"created": created, "refreshed": refreshed, "ratios": len(SAMPLE_RATIOS)}


if __name__ == "__main__":
    seed_roster()
