import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import JSON, Date, DateTime, Enum as SAEnum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from coverdesk.db.base import Base


class AbsenceKind(str, Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    EARLY_DEPARTURE = "EARLY_DEPARTURE"
    LATE_ARRIVAL = "LATE_ARRIVAL"


class AbsenceStatus(str, Enum):
    OPEN = "OPEN"
    COVERED = "COVERED"
    CANCELLED = "CANCELLED"


class AbsenceRecord(Base):
    __tablename__ = "absence_records"
    __table_args__ = (
        UniqueConstraint("teacher_id", "absence_date", name="uq_absence_record_teacher_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    absence_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    kind: Mapped[AbsenceKind] = mapped_column(SAEnum(AbsenceKind, name="absence_kind"), nullable=False)
    status: Mapped[AbsenceStatus] = mapped_column(
        SAEnum(AbsenceStatus, name="absence_status"),
        nullable=False,
        default=AbsenceStatus.OPEN,
    )
    affected_periods: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    effective_from: Mapped[str | None] = mapped_column(String(5), nullable=True)
    effective_to: Mapped[str | None] = mapped_column(String(5), nullable=True)
    partial_pattern: Mapped[str | None] = mapped_column(String(20), nullable=True)
    partial_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
