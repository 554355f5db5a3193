from datetime import date

from pydantic import BaseModel, Field

from coverdesk.schemas.distribution import ConfirmedMode, DistributionSummary, RankedDecision
from coverdesk.schemas.timetable import TimetableSnapshot


class SlotRequest(BaseModel):
    snapshot: TimetableSnapshot
    date: date
    class_id: str = Field(min_length=1, max_length=64)
    period: int = Field(ge=1, le=20)


class AbsenceDistributionRequest(BaseModel):
    snapshot: TimetableSnapshot
    auto_commit: bool = False


class ModeDistributionRequest(BaseModel):
    snapshot: TimetableSnapshot
    date: date
    modes: list[ConfirmedMode] = Field(min_length=1)
    auto_commit: bool = False


class DistributionResultOut(BaseModel):
    decisions: list[RankedDecision] = Field(default_factory=list)
    summary: DistributionSummary
