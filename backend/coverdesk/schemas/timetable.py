from __future__ import annotations

import re
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_VALUES = set(DAY_ORDER)

DAY_SHORT_MAP = {
    "Mon": "Monday",
    "Tue": "Tuesday",
    "Wed": "Wednesday",
    "Thu": "Thursday",
    "Fri": "Friday",
    "Sat": "Saturday",
    "Sun": "Sunday",
}
DAY_ARABIC_MAP = {
    "الاثنين": "Monday",
    "الثلاثاء": "Tuesday",
    "الأربعاء": "Wednesday",
    "الخميس": "Thursday",
    "الجمعة": "Friday",
    "السبت": "Saturday",
    "الأحد": "Sunday",
}

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

LessonKind = Literal["actual", "individual", "stay", "duty"]

STAY_MARKERS = ("stay", "makooth", "مكوث")
INDIVIDUAL_MARKERS = ("individual", "فردي")
DUTY_MARKERS = ("duty", "مناوبة")
SHARED_MARKERS = ("shared", "co-taught", "split", "مشترك")


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_day(value: str) -> str:
    day = value.strip()
    if day in DAY_VALUES:
        return day
    if day in DAY_ARABIC_MAP:
        return DAY_ARABIC_MAP[day]
    titled = day[:3].title()
    if titled in DAY_SHORT_MAP and DAY_SHORT_MAP[titled].lower().startswith(day.lower()):
        return DAY_SHORT_MAP[titled]
    raise ValueError(f"Invalid day value: {value}")


def day_name_for_date(value: date) -> str:
    return DAY_ORDER[value.weekday()]


def normalize_lesson_kind(raw: str | None) -> str:
    kind = (raw or "").strip().lower()
    if not kind:
        return "actual"
    if any(marker in kind for marker in STAY_MARKERS):
        return "stay"
    if any(marker in kind for marker in INDIVIDUAL_MARKERS):
        return "individual"
    if any(marker in kind for marker in DUTY_MARKERS):
        return "duty"
    return "actual"


class Lesson(BaseModel):
    teacher_id: str = Field(min_length=1, max_length=36)
    class_id: str = Field(min_length=1, max_length=64)
    day: str
    period: int = Field(ge=1, le=20)
    subject: str = ""
    kind: LessonKind = "actual"
    teacher_role: Literal["primary", "secondary"] | None = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def normalize_raw(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_kind = str(data.get("kind") or data.get("type") or "")
        data.pop("type", None)
        if "shared" in raw_kind.lower() and not data.get("teacher_role"):
            data["teacher_role"] = "secondary"
        data["kind"] = normalize_lesson_kind(raw_kind)
        subject = str(data.get("subject") or "")
        if data["kind"] == "actual":
            if any(marker in subject for marker in ("مكوث",)):
                data["kind"] = "stay"
            elif any(marker in subject for marker in ("فردي", "فردية")):
                data["kind"] = "individual"
        return data

    @field_validator("day")
    @classmethod
    def validate_day(cls, value: str) -> str:
        return normalize_day(value)

    @property
    def is_shared(self) -> bool:
        if self.teacher_role == "secondary":
            return True
        subject = self.subject.lower()
        return any(marker in subject for marker in SHARED_MARKERS)


class StaffMember(BaseModel):
    id: str = Field(min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=200)
    subjects: list[str] = Field(default_factory=list)
    is_external: bool = False
    is_educator: bool = False
    educator_class_id: str | None = None
    base_role: str = "teacher"

    model_config = {"frozen": True}

    def educates(self, class_id: str) -> bool:
        return self.is_educator and self.educator_class_id is not None and str(self.educator_class_id) == str(class_id)


class ClassItem(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    grade_level: int = Field(default=0, ge=0, le=14)

    model_config = {"frozen": True}


class ScheduleConfig(BaseModel):
    periods_per_day: int = Field(default=8, ge=1, le=20)
    working_days: list[str] = Field(default_factory=lambda: list(DAY_ORDER[:5]))
    school_start_time: str = "08:00"
    period_minutes: int = Field(default=45, ge=5, le=240)
    break_minutes_after: dict[int, int] = Field(default_factory=dict)

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, value: list[str]) -> list[str]:
        return [normalize_day(item) for item in value if item.strip()]

    @field_validator("school_start_time")
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value

    def period_windows(self) -> list[tuple[int, int, int]]:
        """Return ``(period, start_minute, end_minute)`` for every period of the day."""
        windows: list[tuple[int, int, int]] = []
        cursor = parse_time_to_minutes(self.school_start_time)
        for period in range(1, self.periods_per_day + 1):
            end = cursor + self.period_minutes
            windows.append((period, cursor, end))
            cursor = end + max(0, self.break_minutes_after.get(period, 0))
        return windows


class TimetableSnapshot(BaseModel):
    lessons: list[Lesson] = Field(default_factory=list)
    staff: list[StaffMember] = Field(default_factory=list)
    classes: list[ClassItem] = Field(default_factory=list)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @model_validator(mode="after")
    def validate_unique_staff(self) -> "TimetableSnapshot":
        seen: set[str] = set()
        duplicates: set[str] = set()
        for member in self.staff:
            if member.id in seen:
                duplicates.add(member.id)
            seen.add(member.id)
        if duplicates:
            raise ValueError(f"Duplicate staff ids: {', '.join(sorted(duplicates))}")
        return self
