from __future__ import annotations

import datetime
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from errors import ValidationError
from intervals import resolve_span
from policy import build_default_policy, staffing_rules, zone_window
from records import SHIFT_STATUS_DRAFT, ShiftDraft, StaffingRatioRule, StaffingRule


@dataclass
class DemandRequest:
    start_date: datetime.date
    end_date: datetime.date
    projected_counts: Dict[str, int]
    ratios: Sequence[StaffingRatioRule]
    org_id: str
    rules: Sequence[StaffingRule] = field(default_factory=tuple)


def _validate_rules(rules: Sequence[StaffingRule]) -> None:
    for rule in rules:
        if rule.start_time == rule.end_time:
            raise ValidationError(f"Staffing rule {rule.name} has an empty window.")
        if rule.headcount < 0:
            raise ValidationError(f"Staffing rule {rule.name} cannot have a negative headcount.")


def required_staff(projected_count: int, ratio: StaffingRatioRule) -> int:
    """Headcount needed to cover ``projected_count`` at the zone's ratio (always rounds up)."""
    if projected_count <= 0:
        return 0
    return math.ceil(projected_count / ratio.capacity_per_unit) * ratio.staff_count


def preview(drafts: Sequence[ShiftDraft], limit: int) -> Tuple[List[ShiftDraft], int]:
    """Return the first ``limit`` drafts and how many were left out."""
    limit = max(0, int(limit))
    head = list(drafts[:limit])
    return head, max(0, len(drafts) - len(head))


class DemandGenerator:
    """Turns projected population counts into open draft shifts per zone and day."""

    def __init__(self, policy: Optional[Dict] = None) -> None:
        self.policy = policy if policy is not None else build_default_policy()

    def generate(self, request: DemandRequest) -> List[ShiftDraft]:
        self.validate(request)
        ratio_map = self._ratio_map(request.ratios)
        rules = list(request.rules) or staffing_rules(self.policy)
        _validate_rules(rules)
        drafts: List[ShiftDraft] = []
        for day in self._days(request.start_date, request.end_date):
            for zone, count in request.projected_counts.items():
                ratio = ratio_map.get(zone)
                if ratio is None:
                    continue
                start_time, end_time = zone_window(self.policy, zone)
                start, end = resolve_span(day, start_time, end_time)
                for _ in range(required_staff(int(count), ratio)):
                    drafts.append(self._open_shift(request.org_id, start, end, zone, f"{zone} Coverage"))
            for rule in rules:
                start, end = resolve_span(day, rule.start_time, rule.end_time)
                for _ in range(max(0, rule.headcount)):
                    drafts.append(self._open_shift(request.org_id, start, end, rule.role_type, rule.name))
        return drafts

    def uncovered_zones(self, request: DemandRequest) -> List[str]:
        """Zones with projected demand but no staffing ratio; these produce no shifts."""
        ratio_map = self._ratio_map(request.ratios)
        return [zone for zone in request.projected_counts if zone not in ratio_map]

    @staticmethod
    def validate(request: DemandRequest) -> None:
        if request.start_date is None or request.end_date is None:
            raise ValidationError("start_date and end_date are required.")
        if request.end_date < request.start_date:
            raise ValidationError("end_date must not be before start_date.")
        for zone, count in request.projected_counts.items():
            try:
                value = int(count)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Projected count for {zone} must be an integer.") from exc
            if value < 0:
                raise ValidationError(f"Projected count for {zone} cannot be negative.")
        for ratio in request.ratios:
            if ratio.capacity_per_unit <= 0:
                raise ValidationError(f"Staffing ratio for {ratio.zone_name} needs a positive capacity.")
            if ratio.staff_count <= 0:
                raise ValidationError(f"Staffing ratio for {ratio.zone_name} needs a positive staff count.")
        _validate_rules(request.rules)

    @staticmethod
    def _ratio_map(ratios: Sequence[StaffingRatioRule]) -> Dict[str, StaffingRatioRule]:
        mapping: Dict[str, StaffingRatioRule] = {}
        for ratio in ratios:
            # First ratio configured for a zone wins.
            mapping.setdefault(ratio.zone_name, ratio)
        return mapping

    @staticmethod
    def _days(start_date: datetime.date, end_date: datetime.date) -> Iterator[datetime.date]:
        day = start_date
        while day <= end_date:
            yield day
            day += datetime.timedelta(days=1)

    @staticmethod
    def _open_shift(
        org_id: str,
        start: datetime.datetime,
        end: datetime.datetime,
        role_type: str,
        notes: str,
    ) -> ShiftDraft:
        return ShiftDraft(
            organization_id=org_id,
            staff_id=None,
            start=start,
            end=end,
            role_type=role_type,
            status=SHIFT_STATUS_DRAFT,
            is_open=True,
            notes=notes,
        )
