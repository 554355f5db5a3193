from __future__ import annotations

import logging

from coverdesk.schemas.candidates import (
    CandidateInfo,
    ClassifiedCandidates,
    ExcludedCandidate,
    SlotKey,
)
from coverdesk.schemas.timetable import StaffMember
from coverdesk.services.lesson_index import CoverageContext

logger = logging.getLogger(__name__)

EDUCATOR_PRIORITY = {"free": 1, "individual": 2, "shared": 2, "stay": 3, "actual": 4, "duty": 4}

TIER_BY_ACTIVITY = {
    "shared": ("shared", 2, "Co-taught lesson this period, can be released"),
    "individual": ("individual", 3, "Individual lesson this period, can be interrupted"),
    "stay": ("stay", 4, "Stay period, on site and interruptible"),
}


def _exclusion_reason(member: StaffMember, slot: SlotKey, context: CoverageContext) -> str | None:
    if context.is_absent(member.id, slot.period):
        return "Absent this period"
    if member.id in context.committed_for(slot.period):
        return "Already committed elsewhere this period"
    if context.daily_count(member.id) >= context.max_daily_substitutions:
        return f"Reached the daily limit of {context.max_daily_substitutions} substitutions"
    return None


def _classify_member(member: StaffMember, slot: SlotKey, context: CoverageContext) -> CandidateInfo | str:
    activity = context.index.slot_activity(member.id, slot.date, slot.period)
    on_site = context.index.has_lessons_on(member.id, slot.date)
    in_pool = member.id in context.reserve_pool_ids
    base = {
        "teacher_id": member.id,
        "name": member.name,
        "daily_substitutions": context.daily_count(member.id),
        "roster_index": context.roster_index[member.id],
        "is_external": member.is_external,
    }

    if member.educates(slot.class_id):
        if not on_site and not in_pool:
            return "Home-room teacher is not on site today"
        priority = EDUCATOR_PRIORITY[activity]
        if priority == 4:
            return CandidateInfo(
                **base,
                tier="educator",
                priority=4,
                activity=activity,
                reason="Home-room teacher, teaching elsewhere (manual override only)",
                manual_only=True,
            )
        return CandidateInfo(
            **base,
            tier="educator",
            priority=priority,
            activity=activity,
            reason=f"Home-room teacher of the class ({activity})",
        )

    if activity in TIER_BY_ACTIVITY:
        tier, priority, reason = TIER_BY_ACTIVITY[activity]
        return CandidateInfo(**base, tier=tier, priority=priority, activity=activity, reason=reason)
    if activity in ("actual", "duty"):
        return "Teaching a lesson this period"
    if on_site:
        return CandidateInfo(
            **base,
            tier="available",
            priority=5,
            activity="free",
            reason="Free this period and on site today",
        )
    if in_pool:
        return CandidateInfo(
            **base,
            tier="on_call",
            priority=6,
            activity="off_site",
            reason="Listed in today's reserve pool",
        )
    return "Off site: no lessons today and not in the reserve pool"


def classify_candidates(slot: SlotKey, context: CoverageContext) -> ClassifiedCandidates:
    """Partition the roster into the six candidate tiers for one slot.

    Never raises for an empty result. Callers that accept a candidate must
    pass ``context.with_commitment(...)`` to the next call in the same period.
    """
    result = ClassifiedCandidates(class_id=slot.class_id, period=slot.period, date=slot.date)
    for member in context.snapshot.staff:
        reason = _exclusion_reason(member, slot, context)
        outcome = reason if reason is not None else _classify_member(member, slot, context)
        if isinstance(outcome, str):
            result.excluded.append(ExcludedCandidate(teacher_id=member.id, reason=outcome))
            continue
        result.tier(outcome.tier).append(outcome)

    for name in ("educator", "shared", "individual", "stay", "available", "on_call"):
        result.tier(name).sort(key=lambda item: item.sort_key())

    logger.debug(
        "Classified slot %s/%s on %s: %d candidates, %d excluded",
        slot.class_id,
        slot.period,
        slot.date,
        len(result.all_candidates()),
        len(result.excluded),
    )
    return result
