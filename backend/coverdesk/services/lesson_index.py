from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from functools import cached_property

from coverdesk.schemas.absence import SubstitutionLogOut
from coverdesk.schemas.timetable import (
    ClassItem,
    Lesson,
    StaffMember,
    TimetableSnapshot,
    day_name_for_date,
    normalize_day,
)

# Most restrictive activity wins when a teacher holds several lessons in one period.
ACTIVITY_RANK = {"stay": 1, "individual": 2, "shared": 3, "duty": 4, "actual": 5}


def resolve_day(value: date | str) -> str:
    if isinstance(value, date):
        return day_name_for_date(value)
    return normalize_day(value)


def lesson_activity(lesson: Lesson) -> str:
    if lesson.is_shared and lesson.kind in ("actual", "individual"):
        return "shared"
    return lesson.kind


class LessonIndex:
    """Read-only lookups over the weekly timetable."""

    def __init__(self, lessons: Iterable[Lesson]):
        self.lessons: tuple[Lesson, ...] = tuple(lessons)
        self._by_teacher_slot: dict[tuple[str, str, int], list[Lesson]] = defaultdict(list)
        self._by_teacher_day: dict[tuple[str, str], list[Lesson]] = defaultdict(list)
        self._by_class_day: dict[tuple[str, str], list[Lesson]] = defaultdict(list)
        self._by_slot: dict[tuple[str, int], list[Lesson]] = defaultdict(list)
        for lesson in self.lessons:
            self._by_teacher_slot[(lesson.teacher_id, lesson.day, lesson.period)].append(lesson)
            self._by_teacher_day[(lesson.teacher_id, lesson.day)].append(lesson)
            self._by_class_day[(lesson.class_id, lesson.day)].append(lesson)
            self._by_slot[(lesson.day, lesson.period)].append(lesson)

    def lessons_at(self, teacher_id: str, day: date | str, period: int) -> list[Lesson]:
        return list(self._by_teacher_slot.get((teacher_id, resolve_day(day), period), []))

    def teacher_lessons(self, teacher_id: str, day: date | str) -> list[Lesson]:
        items = self._by_teacher_day.get((teacher_id, resolve_day(day)), [])
        return sorted(items, key=lambda item: (item.period, item.class_id))

    def teacher_periods(self, teacher_id: str, day: date | str) -> list[int]:
        return sorted({item.period for item in self._by_teacher_day.get((teacher_id, resolve_day(day)), [])})

    def has_lessons_on(self, teacher_id: str, day: date | str) -> bool:
        return bool(self._by_teacher_day.get((teacher_id, resolve_day(day))))

    def class_lessons(self, class_id: str, day: date | str) -> list[Lesson]:
        items = self._by_class_day.get((class_id, resolve_day(day)), [])
        return sorted(items, key=lambda item: (item.period, item.teacher_id))

    def class_lessons_at(self, class_id: str, day: date | str, period: int) -> list[Lesson]:
        return [item for item in self.class_lessons(class_id, day) if item.period == period]

    def lessons_in_period(self, day: date | str, period: int) -> list[Lesson]:
        return list(self._by_slot.get((resolve_day(day), period), []))

    def slot_activity(self, teacher_id: str, day: date | str, period: int) -> str:
        lessons = self.lessons_at(teacher_id, day, period)
        if not lessons:
            return "free"
        return max((lesson_activity(item) for item in lessons), key=lambda activity: ACTIVITY_RANK[activity])

    def original_lesson(self, class_id: str, day: date | str, period: int) -> Lesson | None:
        """The lesson a class is scheduled to receive, preferring the primary teacher."""
        lessons = [item for item in self.class_lessons_at(class_id, day, period) if item.kind != "stay"]
        if not lessons:
            return None
        primary = [item for item in lessons if not item.is_shared]
        return (primary or lessons)[0]


@dataclass(frozen=True)
class CoverageContext:
    """Immutable snapshot every ranking function reads from.

    ``absent_periods`` maps a teacher to the periods they are away; an empty set
    means the whole day. ``committed`` maps a period to teachers already placed
    somewhere in that period.
    """

    snapshot: TimetableSnapshot
    index: LessonIndex
    date: date
    absent_periods: Mapping[str, frozenset[int]] = field(default_factory=dict)
    committed: Mapping[int, frozenset[str]] = field(default_factory=dict)
    reserve_pool_ids: frozenset[str] = frozenset()
    daily_substitutions: Mapping[str, int] = field(default_factory=dict)
    substitution_logs: tuple[SubstitutionLogOut, ...] = ()
    max_daily_substitutions: int = 5
    alternatives_limit: int = 5
    immunity_cover_threshold: int = 6
    immunity_window_hours: int = 48

    @classmethod
    def build(
        cls,
        snapshot: TimetableSnapshot,
        on_date: date,
        *,
        absent_periods: Mapping[str, Iterable[int]] | None = None,
        committed: Mapping[int, Iterable[str]] | None = None,
        reserve_pool_ids: Iterable[str] = (),
        daily_substitutions: Mapping[str, int] | None = None,
        substitution_logs: Iterable[SubstitutionLogOut] = (),
        **limits: int,
    ) -> "CoverageContext":
        logs = tuple(substitution_logs)
        if daily_substitutions is None:
            counts: dict[str, int] = defaultdict(int)
            for log in logs:
                if log.log_date == on_date:
                    counts[log.substitute_id] += 1
            daily_substitutions = dict(counts)
        return cls(
            snapshot=snapshot,
            index=LessonIndex(snapshot.lessons),
            date=on_date,
            absent_periods={key: frozenset(value) for key, value in (absent_periods or {}).items()},
            committed={period: frozenset(ids) for period, ids in (committed or {}).items()},
            reserve_pool_ids=frozenset(reserve_pool_ids),
            daily_substitutions=dict(daily_substitutions),
            substitution_logs=logs,
            **limits,
        )

    @cached_property
    def day(self) -> str:
        return day_name_for_date(self.date)

    @cached_property
    def staff_by_id(self) -> dict[str, StaffMember]:
        return {member.id: member for member in self.snapshot.staff}

    @cached_property
    def roster_index(self) -> dict[str, int]:
        return {member.id: position for position, member in enumerate(self.snapshot.staff)}

    @cached_property
    def classes_by_id(self) -> dict[str, ClassItem]:
        return {item.id: item for item in self.snapshot.classes}

    def is_absent(self, teacher_id: str, period: int | None = None) -> bool:
        periods = self.absent_periods.get(teacher_id)
        if periods is None:
            return False
        if not periods or period is None:
            return True
        return period in periods

    def committed_for(self, period: int) -> frozenset[str]:
        return self.committed.get(period, frozenset())

    def daily_count(self, teacher_id: str) -> int:
        return self.daily_substitutions.get(teacher_id, 0)

    def grade_of(self, class_id: str) -> int:
        item = self.classes_by_id.get(class_id)
        return item.grade_level if item is not None else 0

    def with_commitment(self, period: int, teacher_id: str) -> "CoverageContext":
        """Return a new context with ``teacher_id`` locked into ``period``."""
        committed = dict(self.committed)
        committed[period] = self.committed_for(period) | {teacher_id}
        counts = dict(self.daily_substitutions)
        counts[teacher_id] = counts.get(teacher_id, 0) + 1
        return replace(self, committed=committed, daily_substitutions=counts)
