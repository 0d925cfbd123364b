from __future__ import annotations

import datetime
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from .engine import DemandGenerator, DemandRequest, preview
from database import create_shifts, list_staffing_ratios, record_audit_log
from errors import ValidationError
from intervals import as_utc
from policy import load_active_policy
from records import ShiftDraft

logger = logging.getLogger(__name__)


def _draft_to_dict(draft: ShiftDraft) -> Dict[str, Any]:
    payload = draft.as_dict()
    payload["start"] = as_utc(draft.start).isoformat()
    payload["end"] = as_utc(draft.end).isoformat()
    return payload


def generate_coverage(
    session_factory: Callable,
    org_id: str,
    start_date: datetime.date,
    end_date: datetime.date,
    projected_counts: Dict[str, int],
    actor: str,
    *,
    persist: bool = False,
    preview_limit: Optional[int] = None,
    rules: Iterable = (),
) -> Dict:
    """Run the demand generator with the organization's ratios and policy.

    With ``persist`` false the result is a preview only; otherwise every draft is
    written in one bulk insert.
    """
    if not org_id:
        raise ValidationError("org_id is required.")
    with session_factory() as session:
        policy = load_active_policy(session)
        ratios = [ratio.as_rule() for ratio in list_staffing_ratios(session, org_id)]
        request = DemandRequest(
            start_date=start_date,
            end_date=end_date,
            projected_counts=dict(projected_counts or {}),
            ratios=ratios,
            org_id=org_id,
            rules=tuple(rules),
        )
        engine = DemandGenerator(policy)
        drafts = engine.generate(request)
        uncovered = engine.uncovered_zones(request)
        if uncovered:
            logger.warning("No staffing ratio for zones %s; no coverage generated", ", ".join(uncovered))
        limit = policy["copilot"].get("preview_limit", 5) if preview_limit is None else preview_limit
        head, remaining = preview(drafts, limit)
        summary: Dict[str, Any] = {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "shift_count": len(drafts),
            "uncovered_zones": uncovered,
            "preview": [_draft_to_dict(draft) for draft in head],
            "remaining": remaining,
            "persisted": False,
            "shift_ids": [],
        }
        if not persist:
            return summary
        created = create_shifts(session, drafts)
        record_audit_log(
            session,
            user_id=actor or "system",
            action="COPILOT_GENERATE",
            target_type="Organization",
            target_id=org_id,
            payload={"start": start_date.isoformat(), "end": end_date.isoformat(), "created": len(created)},
        )
        logger.info("Copilot created %d draft shifts for %s", len(created), org_id)
        summary["persisted"] = True
        summary["shift_ids"] = [shift.id for shift in created]
        return summary
