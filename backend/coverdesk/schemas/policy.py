from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from coverdesk.schemas.timetable import StaffMember

EventType = Literal["EXAM", "TRIP", "RAINY", "EMERGENCY", "HOLIDAY"]
LogicOp = Literal["AND", "OR", "NAND"]
ScoreOperation = Literal["ADD", "SUBTRACT", "MULTIPLY", "SET_TO"]
EffectType = Literal[
    "BLOCK_ASSIGNMENT",
    "BOOST_SCORE",
    "PENALIZE_SCORE",
    "LIMIT_DAILY_COVER",
    "FORCE_INTERNAL_ONLY",
]


class Condition(BaseModel):
    teacher_type: Literal["internal", "external", "any"] = "any"
    lesson_type: Literal["free", "actual", "individual", "stay", "duty", "shared", "released", "any"] = "any"
    subject: str = "any"
    time_context: Literal["same_day_stay", "during_school", "is_immune_period", "any"] = "any"
    relationship: Literal[
        "same_class",
        "same_grade",
        "is_homeroom",
        "same_homeroom",
        "same_subject",
        "same_domain",
        "continuity_match",
        "original_teacher",
        "governing_subject",
        "any",
    ] = "any"
    min_grade: int | None = Field(default=None, ge=0, le=14)
    max_grade: int | None = Field(default=None, ge=0, le=14)
    daily_covers_above: int | None = Field(default=None, ge=0)
    consecutive_periods_above: int | None = Field(default=None, ge=0)

    model_config = {"extra": "forbid"}


class ConditionGroup(BaseModel):
    op: LogicOp = "AND"
    conditions: list[Condition | ConditionGroup] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class Effect(BaseModel):
    type: EffectType
    value: float = 0


class ExceptionRule(BaseModel):
    id: str
    when: ConditionGroup


class RuleScope(BaseModel):
    target_scope: Literal["all", "grades", "classes"] = "all"
    grades: list[int] = Field(default_factory=list)
    class_ids: list[str] = Field(default_factory=list)
    periods: list[int] = Field(default_factory=list)


class GoldenRule(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    is_enabled: bool = True
    severity: Literal["HARD", "SOFT", "CRITICAL"] = "HARD"
    scope: RuleScope = Field(default_factory=RuleScope)
    when: ConditionGroup = Field(default_factory=ConditionGroup)
    then: list[Effect] = Field(default_factory=list)
    exceptions: list[ExceptionRule] = Field(default_factory=list)


class ScoreModifier(BaseModel):
    id: str
    when: ConditionGroup = Field(default_factory=ConditionGroup)
    operation: ScoreOperation
    value: float
    label: str = ""


class StepScoring(BaseModel):
    base_score: float = 0
    modifiers: list[ScoreModifier] = Field(default_factory=list)


class PriorityStep(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    label: str = Field(min_length=1, max_length=200)
    order: int = Field(ge=1)
    is_enabled: bool = True
    weight_percentage: float = Field(default=100, ge=0, le=100)
    stop_on_match: bool = False
    condition_ids: list[str] = Field(default_factory=list)
    filters: ConditionGroup = Field(default_factory=ConditionGroup)
    scoring: StepScoring = Field(default_factory=StepScoring)
    explanation: str = ""


class ModeSettings(BaseModel):
    allow_external: bool = True
    allow_stay_pull: bool = True
    allow_individual_pull: bool = True
    allow_shared_pull: bool = True
    max_daily_coverage: int = Field(default=5, ge=0, le=20)
    fairness_sensitivity: Literal["strict", "flexible", "off"] = "off"
    force_homeroom_presence: bool = False
    governing_subject: str = ""
    prioritize_governing_subject: bool = False


class ModeConfig(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=200)
    is_active: bool = True
    linked_event_type: EventType | None = None
    golden_rules: list[GoldenRule] = Field(default_factory=list)
    priority_ladder: list[PriorityStep] = Field(default_factory=list)
    conditions: dict[str, ConditionGroup] = Field(default_factory=dict)
    settings: ModeSettings | None = None

    @model_validator(mode="after")
    def validate_condition_references(self) -> "ModeConfig":
        unknown = sorted(
            {
                condition_id
                for step in self.priority_ladder
                for condition_id in step.condition_ids
                if condition_id not in self.conditions
            }
        )
        if unknown:
            raise ValueError(f"Priority ladder references unknown conditions: {', '.join(unknown)}")
        return self


class RankedCandidate(BaseModel):
    employee: StaffMember
    score: float = 0
    priority: int = 999
    reason: str = ""
    allowed: bool = True
    breakdown: list[str] = Field(default_factory=list)
    violations: list[str] = Field(default_factory=list)
    daily_covers: int = 0
    roster_index: int = 0
