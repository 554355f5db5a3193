from __future__ import annotations

from datetime import date

from coverdesk.core.exceptions import ValidationFailedError
from coverdesk.models.absence_record import AbsenceKind
from coverdesk.schemas.absence import AbsenceCreate, DerivedAbsence, DerivedCoverageRequest
from coverdesk.schemas.timetable import TIME_PATTERN, ScheduleConfig, TimetableSnapshot, parse_time_to_minutes
from coverdesk.services.lesson_index import LessonIndex

# Reserve and supervision periods leave no class uncovered.
UNCOVERED_LESSON_KINDS = ("stay", "duty")


def _time_errors(payload: AbsenceCreate) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    for field in ("effective_from", "effective_to"):
        value = getattr(payload, field)
        if value is not None and not TIME_PATTERN.match(value):
            errors.append({"field": field, "reason": "Time must be in HH:MM 24-hour format"})
    if errors:
        return errors

    if payload.kind == AbsenceKind.EARLY_DEPARTURE and not payload.effective_from:
        errors.append({"field": "effective_from", "reason": "Departure time is required for early departures"})
    if payload.kind == AbsenceKind.LATE_ARRIVAL and not payload.effective_to:
        errors.append({"field": "effective_to", "reason": "Arrival time is required for late arrivals"})
    if payload.effective_from and payload.effective_to:
        if parse_time_to_minutes(payload.effective_from) >= parse_time_to_minutes(payload.effective_to):
            errors.append({"field": "effective_to", "reason": "effective_to must be later than effective_from"})
    return errors


def validate_absence(payload: AbsenceCreate, snapshot: TimetableSnapshot) -> None:
    """Reject malformed submissions with one field-level error list."""
    errors: list[dict[str, str]] = []
    teacher_id = (payload.teacher_id or "").strip()
    if not teacher_id:
        errors.append({"field": "teacher_id", "reason": "Teacher is required"})
    elif snapshot.staff and teacher_id not in {member.id for member in snapshot.staff}:
        errors.append({"field": "teacher_id", "reason": f"Unknown teacher {teacher_id}"})
    if payload.date is None:
        errors.append({"field": "date", "reason": "Date is required"})

    if payload.kind == AbsenceKind.PARTIAL and not payload.affected_periods:
        errors.append({"field": "affected_periods", "reason": "At least one period is required for partial absences"})
    periods_per_day = snapshot.schedule.periods_per_day
    invalid = sorted({period for period in payload.affected_periods if period < 1 or period > periods_per_day})
    if invalid:
        errors.append(
            {
                "field": "affected_periods",
                "reason": f"Periods must be between 1 and {periods_per_day}: {', '.join(map(str, invalid))}",
            }
        )
    errors.extend(_time_errors(payload))
    if errors:
        raise ValidationFailedError(errors)


def periods_from_departure(schedule: ScheduleConfig, departure: str) -> list[int]:
    cutoff = parse_time_to_minutes(departure)
    return [period for period, _, end in schedule.period_windows() if end > cutoff]


def periods_before_arrival(schedule: ScheduleConfig, arrival: str) -> list[int]:
    cutoff = parse_time_to_minutes(arrival)
    return [period for period, start, _ in schedule.period_windows() if start < cutoff]


def derive_affected_periods(payload: AbsenceCreate, snapshot: TimetableSnapshot, index: LessonIndex) -> list[int]:
    if payload.kind == AbsenceKind.FULL:
        return index.teacher_periods(payload.teacher_id.strip(), payload.date)
    if payload.affected_periods:
        return sorted(set(payload.affected_periods))
    if payload.kind == AbsenceKind.EARLY_DEPARTURE:
        return periods_from_departure(snapshot.schedule, payload.effective_from)
    if payload.kind == AbsenceKind.LATE_ARRIVAL:
        return periods_before_arrival(snapshot.schedule, payload.effective_to)
    return []


def infer_partial_pattern(periods: list[int], max_period: int) -> tuple[str | None, str | None]:
    """Describe the shape of a partial absence as ``(pattern, type)``."""
    ordered = sorted(set(periods))
    if not ordered:
        return None, None
    contiguous = all(following == previous + 1 for previous, following in zip(ordered, ordered[1:]))
    if not contiguous:
        return "NON_CONTIGUOUS", "LEAVE_AND_RETURN"
    covers_start = ordered[0] == 1
    covers_end = ordered[-1] == max_period
    if covers_start and not covers_end:
        return "CONTIGUOUS", "LATE"
    if covers_end and not covers_start:
        return "CONTIGUOUS", "LEAVE_UNTIL_END"
    return "CONTIGUOUS", "LEAVE_AND_RETURN"


def derive_coverage_requests(
    teacher_id: str,
    absence_date: date,
    periods: list[int],
    index: LessonIndex,
) -> list[DerivedCoverageRequest]:
    requests: list[DerivedCoverageRequest] = []
    seen: set[tuple[int, str]] = set()
    for period in sorted(set(periods)):
        for lesson in sorted(index.lessons_at(teacher_id, absence_date, period), key=lambda item: item.class_id):
            if lesson.kind in UNCOVERED_LESSON_KINDS or (period, lesson.class_id) in seen:
                continue
            seen.add((period, lesson.class_id))
            requests.append(
                DerivedCoverageRequest(
                    date=absence_date,
                    period_id=period,
                    absent_teacher_id=teacher_id,
                    class_id=lesson.class_id,
                    subject=lesson.subject or None,
                )
            )
    return requests


def create_absence(
    payload: AbsenceCreate,
    snapshot: TimetableSnapshot,
) -> tuple[DerivedAbsence, list[DerivedCoverageRequest]]:
    """Validate a submission and derive the absence and its coverage requests.

    Pure: nothing is stored here. A FULL absence covers every period the
    teacher teaches that day, a PARTIAL one exactly the supplied periods.
    """
    validate_absence(payload, snapshot)
    index = LessonIndex(snapshot.lessons)
    periods = derive_affected_periods(payload, snapshot, index)
    if not periods:
        reason = (
            "Teacher has no lessons on this day"
            if payload.kind == AbsenceKind.FULL
            else "No school periods fall inside the given times"
        )
        raise ValidationFailedError([{"field": "affected_periods", "reason": reason}])

    pattern, partial_type = (None, None)
    if payload.kind != AbsenceKind.FULL:
        pattern, partial_type = infer_partial_pattern(periods, snapshot.schedule.periods_per_day)

    absence = DerivedAbsence(
        teacher_id=payload.teacher_id.strip(),
        date=payload.date,
        kind=payload.kind,
        affected_periods=periods,
        reason=payload.reason.strip(),
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        partial_pattern=pattern,
        partial_type=partial_type,
    )
    return absence, derive_coverage_requests(absence.teacher_id, absence.date, periods, index)
