from __future__ import annotations

import datetime
import sys
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

APP_DIR = Path(__file__).resolve().parents[1] / "app"
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from database import Base, list_staff_profiles, list_staffing_ratios  # noqa: E402
from roster import extend_schedules  # noqa: E402
from scripts.seed_roster import SAMPLE_STAFF, seed_roster  # noqa: E402


def test_seed_is_idempotent_and_feeds_extension() -> None:
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)

    first = seed_roster(Session, org_id="org-demo")
    second = seed_roster(Session, org_id="org-demo")

    assert first["created"] == len(SAMPLE_STAFF)
    assert second == {"created": 0, "refreshed": len(SAMPLE_STAFF), "ratios": first["ratios"]}
    with Session() as session:
        assert len(list_staff_profiles(session, "org-demo")) == len(SAMPLE_STAFF)
        assert [ratio.zone_name for ratio in list_staffing_ratios(session, "org-demo")] == ["Boarding", "Daycare", "Suites"]
        result = extend_schedules(session, "org-demo", weeks=1, today=datetime.date(2024, 1, 1))
    # Everyone except the profile without a pattern.
    assert result["staff_count"] == len(SAMPLE_STAFF) - 1
    assert result["errors"] == []
    engine.dispose()
