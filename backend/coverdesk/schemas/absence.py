from datetime import date, datetime
from datetime import date as date_type

from pydantic import BaseModel, Field

from coverdesk.models.absence_record import AbsenceKind, AbsenceStatus
from coverdesk.models.coverage_request import CoverageRequestStatus
from coverdesk.models.daily_pool import PoolEntrySource
from coverdesk.models.substitution_log import SubstitutionKind
from coverdesk.schemas.timetable import TimetableSnapshot


class AbsenceCreate(BaseModel):
    # Presence of teacher_id and date is checked by the intake validator so the
    # caller gets one field-level error list.
    teacher_id: str | None = Field(default=None, max_length=36)
    date: date_type | None = None
    kind: AbsenceKind = AbsenceKind.FULL
    affected_periods: list[int] = Field(default_factory=list)
    reason: str = Field(default="", max_length=1000)
    effective_from: str | None = None
    effective_to: str | None = None


class AbsenceSubmission(BaseModel):
    absence: AbsenceCreate
    snapshot: TimetableSnapshot


class DerivedCoverageRequest(BaseModel):
    date: date
    period_id: int
    absent_teacher_id: str
    class_id: str
    subject: str | None = None


class DerivedAbsence(BaseModel):
    teacher_id: str
    date: date
    kind: AbsenceKind
    affected_periods: list[int]
    reason: str = ""
    effective_from: str | None = None
    effective_to: str | None = None
    partial_pattern: str | None = None
    partial_type: str | None = None


class AbsenceRecordOut(BaseModel):
    id: str
    teacher_id: str
    absence_date: date
    kind: AbsenceKind
    status: AbsenceStatus
    affected_periods: list[int]
    reason: str
    effective_from: str | None = None
    effective_to: str | None = None
    partial_pattern: str | None = None
    partial_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class CoverageRequestOut(BaseModel):
    id: str
    request_date: date
    period_id: int
    absent_teacher_id: str
    absence_id: str
    class_id: str
    subject: str | None = None
    status: CoverageRequestStatus
    assigned_substitute_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class AbsenceWithRequestsOut(BaseModel):
    absence: AbsenceRecordOut
    coverage_requests: list[CoverageRequestOut] = Field(default_factory=list)


class CoverageAssignmentOut(BaseModel):
    id: str
    coverage_request_id: str
    substitute_id: str
    assignment_date: date
    period_id: int
    class_id: str
    absent_teacher_id: str
    absence_id: str
    assigned_at: datetime | None = None

    model_config = {"from_attributes": True}


class AssignSubstituteRequest(BaseModel):
    substitute_id: str = Field(min_length=1, max_length=36)
    substitute_name: str | None = Field(default=None, max_length=200)
    is_external: bool = False
    reason: str | None = Field(default=None, max_length=1000)
    class_swap: bool = False


class AssignmentResultOut(BaseModel):
    assignment: CoverageAssignmentOut
    absence: AbsenceRecordOut
    coverage_request: CoverageRequestOut


class DailyPoolEntryCreate(BaseModel):
    teacher_id: str = Field(min_length=1, max_length=36)
    source: PoolEntrySource = PoolEntrySource.MANUAL_ADD
    period_id: int | None = Field(default=None, ge=1, le=20)


class DailyPoolEntryOut(BaseModel):
    id: str
    teacher_id: str
    source: PoolEntrySource
    period_id: int | None = None
    assignment_id: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class DailyPoolOut(BaseModel):
    date: date
    entries: list[DailyPoolEntryOut] = Field(default_factory=list)


class SubstitutionLogOut(BaseModel):
    id: str | None = None
    log_date: date
    period: int
    class_id: str
    absent_teacher_id: str | None = None
    substitute_id: str
    substitute_name: str
    kind: SubstitutionKind
    reason: str = ""
    mode_context: str = ""
    coverage_request_id: str | None = None
    score: float | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
