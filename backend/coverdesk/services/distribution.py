from __future__ import annotations

import logging
from collections.abc import Sequence

from coverdesk.models.coverage_request import CoverageRequestStatus
from coverdesk.schemas.absence import CoverageRequestOut
from coverdesk.schemas.candidates import SlotKey
from coverdesk.schemas.distribution import (
    NO_CANDIDATE_REASON,
    CandidateSummary,
    ConfirmedMode,
    RankedDecision,
    summarize,
)
from coverdesk.services.candidate_classifier import classify_candidates
from coverdesk.services.class_swap import analyze_class_swap
from coverdesk.services.lesson_index import CoverageContext
from coverdesk.services.policy_engine import PolicySlot, apply_mode_rules

logger = logging.getLogger(__name__)


def distribute_absence(requests: Sequence[CoverageRequestOut], context: CoverageContext) -> list[RankedDecision]:
    """Propose one substitute per pending request, period by period.

    Each accepted candidate is locked into its period before the next slot is
    classified, so one teacher is never proposed twice in the same period.
    """
    pending = sorted(
        (
            item
            for item in requests
            if item.status == CoverageRequestStatus.PENDING and item.request_date == context.date
        ),
        key=lambda item: (item.period_id, item.class_id),
    )
    decisions: list[RankedDecision] = []
    for request in pending:
        slot = SlotKey(request.request_date, request.class_id, request.period_id)
        classified = classify_candidates(slot, context)
        ranked = classified.ranked()
        swap = analyze_class_swap(request.class_id, request.period_id, request.request_date, context)
        base = {
            "date": slot.date,
            "class_id": slot.class_id,
            "period": slot.period,
            "source": "absence",
            "original_teacher_id": request.absent_teacher_id,
            "coverage_request_id": request.id,
            "swap": swap if swap.can_swap else None,
        }
        if not ranked:
            decisions.append(RankedDecision(**base, status="uncovered", reason=NO_CANDIDATE_REASON))
            continue

        chosen = ranked[0]
        alternatives = [
            CandidateSummary(teacher_id=item.teacher_id, name=item.name, priority=item.priority, reason=item.reason)
            for item in classified.ranked(include_manual=True)
            if item.teacher_id != chosen.teacher_id
        ][: context.alternatives_limit]
        decisions.append(
            RankedDecision(
                **base,
                status="proposed",
                substitute_id=chosen.teacher_id,
                substitute_name=chosen.name,
                is_external=chosen.is_external,
                tier=chosen.tier,
                priority=chosen.priority,
                reason=chosen.reason,
                alternatives=alternatives,
            )
        )
        context = context.with_commitment(slot.period, chosen.teacher_id)

    logger.info("Absence distribution on %s: %s", context.date, summarize(decisions).model_dump())
    return decisions


def run_mode_distribution(confirmed_modes: Sequence[ConfirmedMode], context: CoverageContext) -> list[RankedDecision]:
    """Fill every (class, period) slot of the confirmed modes using their policy rules.

    The first mode to reach a slot decides it; later modes only add their id.
    The result is a pure function of the inputs.
    """
    on_date = context.date
    index = context.index
    released = frozenset(
        (class_id, period)
        for confirmed in confirmed_modes
        for class_id in confirmed.class_ids
        for period in confirmed.periods
        if index.original_lesson(class_id, on_date, period) is not None
    )

    decisions: dict[SlotKey, RankedDecision] = {}
    for confirmed in confirmed_modes:
        mode = confirmed.mode
        for class_id in confirmed.class_ids:
            for period in confirmed.periods:
                key = SlotKey(on_date, class_id, period)
                original = index.original_lesson(class_id, on_date, period)
                if original is None:
                    continue
                if key in decisions:
                    if mode.id not in decisions[key].modes:
                        decisions[key].modes.append(mode.id)
                    continue

                slot = PolicySlot(key=key, original_lesson=original, released=released)
                ranked = apply_mode_rules(mode, slot, context)
                eligible = [item for item in ranked if item.allowed and item.score > 0]
                base = {
                    "date": on_date,
                    "class_id": class_id,
                    "period": period,
                    "source": "mode",
                    "original_teacher_id": original.teacher_id,
                    "modes": [mode.id],
                }
                if not eligible:
                    decisions[key] = RankedDecision(**base, status="uncovered", reason=NO_CANDIDATE_REASON)
                    continue

                best = eligible[0]
                decisions[key] = RankedDecision(
                    **base,
                    status="proposed",
                    substitute_id=best.employee.id,
                    substitute_name=best.employee.name,
                    is_external=best.employee.is_external,
                    priority=best.priority,
                    score=best.score,
                    reason=best.reason,
                    breakdown=best.breakdown,
                    alternatives=[
                        CandidateSummary(
                            teacher_id=item.employee.id,
                            name=item.employee.name,
                            score=item.score,
                            priority=item.priority,
                            reason=item.reason,
                        )
                        for item in eligible[1 : context.alternatives_limit + 1]
                    ],
                )
                context = context.with_commitment(period, best.employee.id)

    ordered = sorted(decisions.values(), key=lambda item: (item.period, item.class_id))
    logger.info("Mode distribution on %s: %s", on_date, summarize(ordered).model_dump())
    return ordered
