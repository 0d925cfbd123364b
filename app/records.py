from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional

SHIFT_STATUS_DRAFT = "draft"
SHIFT_STATUS_PUBLISHED = "published"
SHIFT_STATUS_ACTIVE = "active"
SHIFT_STATUS_CHOICES = {
    SHIFT_STATUS_DRAFT,
    SHIFT_STATUS_PUBLISHED,
    SHIFT_STATUS_ACTIVE,
    "approved",
    "pending_approval",
    "completed",
    "rejected",
}


def new_id() -> str:
    return str(uuid.uuid4())


class ShiftCandidate(NamedTuple):
    """The part of a shift the conflict check looks at."""

    staff_id: Optional[str]
    start: datetime.datetime
    end: datetime.datetime


@dataclass
class ShiftDraft:
    """A generated shift that has not been written to the repository yet."""

    organization_id: str
    start: datetime.datetime
    end: datetime.datetime
    role_type: str
    staff_id: Optional[str] = None
    status: str = SHIFT_STATUS_DRAFT
    is_open: bool = False
    notes: str = ""
    id: str = field(default_factory=new_id)

    @property
    def duration_hours(self) -> float:
        return max(0.0, (self.end - self.start).total_seconds() / 3600)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "staff_id": self.staff_id,
            "start": self.start,
            "end": self.end,
            "role_type": self.role_type,
            "status": self.status,
            "is_open": self.is_open,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class TimeEntryRecord:
    staff_id: str
    clock_in: datetime.datetime
    clock_out: Optional[datetime.datetime] = None
    total_break_minutes: int = 0
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class StaffingRatioRule:
    """One staff unit covers ``capacity_per_unit`` of the zone's population."""

    zone_name: str
    capacity_per_unit: int
    staff_count: int = 1


@dataclass(frozen=True)
class StaffingRule:
    """Fixed daily headcount that does not depend on projected demand."""

    name: str
    role_type: str
    headcount: int
    start_time: datetime.time
    end_time: datetime.time
