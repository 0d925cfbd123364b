"""The single rule deciding whether a shift may be committed for a staff member.

Only ``published`` shifts block: bulk generation may leave overlapping drafts for a
manager to review, while every concrete assignment is checked against the live roster.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from errors import ConflictError
from intervals import overlaps
from records import SHIFT_STATUS_PUBLISHED


def _blocking_shifts(candidate: Any, existing: Iterable[Any], exclude_id: Optional[str]) -> Iterable[Any]:
    staff_id = getattr(candidate, "staff_id", None)
    for shift in existing:
        if getattr(shift, "staff_id", None) != staff_id:
            continue
        if exclude_id is not None and str(shift.id) == str(exclude_id):
            continue
        if (shift.status or "").lower() != SHIFT_STATUS_PUBLISHED:
            continue
        yield shift


def find_conflicts(candidate: Any, existing: Iterable[Any], exclude_id: Optional[str] = None) -> List[Any]:
    """Return the published shifts of the candidate's owner that overlap it."""
    if not getattr(candidate, "staff_id", None):
        return []
    return [
        shift
        for shift in _blocking_shifts(candidate, existing, exclude_id)
        if overlaps(candidate.start, candidate.end, shift.start, shift.end)
    ]


def has_conflict(candidate: Any, existing: Iterable[Any], exclude_id: Optional[str] = None) -> bool:
    return bool(find_conflicts(candidate, existing, exclude_id))


def ensure_no_conflict(candidate: Any, existing: Iterable[Any], exclude_id: Optional[str] = None) -> None:
    conflicts = find_conflicts(candidate, existing, exclude_id)
    if conflicts:
        raise ConflictError(candidate.staff_id, [shift.id for shift in conflicts])
