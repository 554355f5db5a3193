import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from coverdesk.db.base import Base


class SubstitutionKind(str, Enum):
    assign_internal = "assign_internal"
    assign_external = "assign_external"
    assign_distribution = "assign_distribution"
    class_swap = "class_swap"


class SubstitutionLog(Base):
    __tablename__ = "substitution_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    log_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period: Mapped[int] = mapped_column(Integer, nullable=False)
    class_id: Mapped[str] = mapped_column(String(64), nullable=False)
    absent_teacher_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    substitute_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    substitute_name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[SubstitutionKind] = mapped_column(
        SAEnum(SubstitutionKind, name="substitution_kind"),
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    mode_context: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    coverage_request_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
