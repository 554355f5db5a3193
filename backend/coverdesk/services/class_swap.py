from __future__ import annotations

from datetime import date

from coverdesk.schemas.candidates import SwapOpportunity
from coverdesk.services.lesson_index import CoverageContext, resolve_day

SWAP_TYPES = {"free": "gap", "individual": "individual", "stay": "stay"}


def analyze_class_swap(class_id: str, absent_period: int, on_date: date, context: CoverageContext) -> SwapOpportunity:
    """Check whether the class's last-period teacher can step in now.

    A swappable result proposes that teacher for ``absent_period`` and an early
    dismissal after ``last_period - 1``. It is only ever a proposal.
    """
    day = resolve_day(on_date)
    lessons = [item for item in context.index.class_lessons(class_id, on_date) if item.kind != "stay"]

    def refuse(reason: str, **extra) -> SwapOpportunity:
        return SwapOpportunity(can_swap=False, class_id=class_id, absent_period=absent_period, day=day, reason=reason, **extra)

    if not lessons:
        return refuse("Class has no lessons on this day")

    last_period = max(item.period for item in lessons)
    if last_period <= absent_period:
        return refuse("No later period to move forward", last_period=last_period)

    last_lessons = [item for item in lessons if item.period == last_period]
    teacher_ids = sorted({item.teacher_id for item in last_lessons})
    if len(teacher_ids) != 1:
        return refuse("Last period has no single teacher", last_period=last_period)

    teacher_id = teacher_ids[0]
    last_lesson = last_lessons[0]
    if context.is_absent(teacher_id, absent_period) or context.is_absent(teacher_id, last_period):
        return refuse(
            "Last-period teacher is absent",
            last_period=last_period,
            last_period_lesson=last_lesson,
        )
    if teacher_id in context.committed_for(absent_period):
        return refuse(
            "Last-period teacher is already committed in the absent period",
            last_period=last_period,
            last_period_lesson=last_lesson,
        )

    activity = context.index.slot_activity(teacher_id, on_date, absent_period)
    swap_type = SWAP_TYPES.get(activity)
    if swap_type is None:
        return refuse(
            f"Last-period teacher is busy ({activity}) during period {absent_period}",
            last_period=last_period,
            last_period_lesson=last_lesson,
        )

    return SwapOpportunity(
        can_swap=True,
        class_id=class_id,
        absent_period=absent_period,
        day=day,
        swap_type=swap_type,
        last_period=last_period,
        last_period_lesson=last_lesson,
        swap_teacher_id=teacher_id,
        early_dismissal_period=last_period - 1,
        reason=f"Move period {last_period} forward and dismiss the class after period {last_period - 1}",
    )
