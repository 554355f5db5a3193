import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from coverdesk.db.base import Base


class CoverageRequestStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    CANCELLED = "CANCELLED"


class CoverageRequest(Base):
    __tablename__ = "coverage_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(Integer, nullable=False)
    absent_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    absence_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[CoverageRequestStatus] = mapped_column(
        SAEnum(CoverageRequestStatus, name="coverage_request_status"),
        nullable=False,
        default=CoverageRequestStatus.PENDING,
        index=True,
    )
    assigned_substitute_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
