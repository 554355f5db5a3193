from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from coverdesk.schemas.candidates import CandidateTier, SlotKey, SwapOpportunity
from coverdesk.schemas.policy import ModeConfig

DecisionStatus = Literal["proposed", "uncovered", "committed", "conflict"]

NO_CANDIDATE_REASON = "No suitable candidate"


class CandidateSummary(BaseModel):
    teacher_id: str
    name: str
    score: float | None = None
    priority: int | None = None
    reason: str = ""


class RankedDecision(BaseModel):
    date: date
    class_id: str
    period: int
    source: Literal["absence", "mode"]
    status: DecisionStatus
    original_teacher_id: str | None = None
    coverage_request_id: str | None = None
    substitute_id: str | None = None
    substitute_name: str | None = None
    is_external: bool = False
    tier: CandidateTier | None = None
    priority: int | None = None
    score: float | None = None
    reason: str = ""
    breakdown: list[str] = Field(default_factory=list)
    alternatives: list[CandidateSummary] = Field(default_factory=list)
    modes: list[str] = Field(default_factory=list)
    swap: SwapOpportunity | None = None

    @property
    def key(self) -> SlotKey:
        return SlotKey(self.date, self.class_id, self.period)

    @property
    def is_covered(self) -> bool:
        return self.substitute_id is not None and self.status in ("proposed", "committed")


class ConfirmedMode(BaseModel):
    mode: ModeConfig
    class_ids: list[str] = Field(min_length=1)
    periods: list[int] = Field(min_length=1)

    @field_validator("periods")
    @classmethod
    def validate_periods(cls, value: list[int]) -> list[int]:
        if any(item < 1 for item in value):
            raise ValueError("Periods must be positive")
        return sorted(set(value))

    @field_validator("class_ids")
    @classmethod
    def validate_class_ids(cls, value: list[str]) -> list[str]:
        cleaned: list[str] = []
        for item in value:
            item = item.strip()
            if item and item not in cleaned:
                cleaned.append(item)
        if not cleaned:
            raise ValueError("At least one class is required")
        return cleaned


class DistributionSummary(BaseModel):
    total_slots: int = 0
    covered: int = 0
    uncovered: int = 0
    committed: int = 0
    conflicts: int = 0


def summarize(decisions: list[RankedDecision]) -> DistributionSummary:
    return DistributionSummary(
        total_slots=len(decisions),
        covered=sum(1 for item in decisions if item.is_covered),
        uncovered=sum(1 for item in decisions if item.status == "uncovered"),
        committed=sum(1 for item in decisions if item.status == "committed"),
        conflicts=sum(1 for item in decisions if item.status == "conflict"),
    )
