from __future__ import annotations

from datetime import date
from typing import Literal, NamedTuple

from pydantic import BaseModel, Field

from coverdesk.schemas.timetable import Lesson

CandidateTier = Literal["educator", "shared", "individual", "stay", "available", "on_call"]
TIER_ORDER: tuple[CandidateTier, ...] = ("educator", "shared", "individual", "stay", "available", "on_call")

SlotActivity = Literal["free", "actual", "individual", "stay", "duty", "shared", "off_site"]


class SlotKey(NamedTuple):
    date: date
    class_id: str
    period: int


class CandidateInfo(BaseModel):
    teacher_id: str
    name: str
    tier: CandidateTier
    priority: int = Field(ge=1, le=6)
    activity: SlotActivity
    reason: str
    daily_substitutions: int = 0
    roster_index: int = 0
    is_external: bool = False
    manual_only: bool = False

    def sort_key(self) -> tuple[int, int, int, int]:
        return (self.priority, TIER_ORDER.index(self.tier), self.daily_substitutions, self.roster_index)


class ExcludedCandidate(BaseModel):
    teacher_id: str
    reason: str


class ClassifiedCandidates(BaseModel):
    class_id: str
    period: int
    date: date
    educator: list[CandidateInfo] = Field(default_factory=list)
    shared: list[CandidateInfo] = Field(default_factory=list)
    individual: list[CandidateInfo] = Field(default_factory=list)
    stay: list[CandidateInfo] = Field(default_factory=list)
    available: list[CandidateInfo] = Field(default_factory=list)
    on_call: list[CandidateInfo] = Field(default_factory=list)
    excluded: list[ExcludedCandidate] = Field(default_factory=list)

    def tier(self, name: CandidateTier) -> list[CandidateInfo]:
        return getattr(self, name)

    def all_candidates(self) -> list[CandidateInfo]:
        return [item for name in TIER_ORDER for item in self.tier(name)]

    def ranked(self, *, include_manual: bool = False) -> list[CandidateInfo]:
        """Flatten every tier into one list ordered for automatic selection."""
        pool = [item for item in self.all_candidates() if include_manual or not item.manual_only]
        return sorted(pool, key=lambda item: item.sort_key())

    @property
    def is_empty(self) -> bool:
        return not self.all_candidates()


class SwapOpportunity(BaseModel):
    can_swap: bool
    class_id: str
    absent_period: int
    day: str
    swap_type: Literal["gap", "individual", "stay"] | None = None
    last_period: int | None = None
    last_period_lesson: Lesson | None = None
    swap_teacher_id: str | None = None
    early_dismissal_period: int | None = None
    requires_ratification: bool = True
    reason: str = ""
