import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from coverdesk.db.base import Base


class CoverageAssignment(Base):
    """Audit row written once per resolved coverage request. Never updated."""

    __tablename__ = "coverage_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    coverage_request_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    substitute_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    assignment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period_id: Mapped[int] = mapped_column(Integer, nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    absent_teacher_id: Mapped[str] = mapped_column(String(36), nullable=False)
    absence_id: Mapped[str] = mapped_column(String(36), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
