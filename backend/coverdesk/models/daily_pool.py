import uuid
from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, Enum as SAEnum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from coverdesk.db.base import Base


class PoolEntrySource(str, Enum):
    SUBSTITUTE_ASSIGNMENT = "SUBSTITUTE_ASSIGNMENT"
    MANUAL_ADD = "MANUAL_ADD"
    EXTERNAL_POOL = "EXTERNAL_POOL"


RESERVE_SOURCES = (PoolEntrySource.MANUAL_ADD, PoolEntrySource.EXTERNAL_POOL)


class DailyPoolEntry(Base):
    __tablename__ = "daily_pool_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    pool_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    teacher_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    source: Mapped[PoolEntrySource] = mapped_column(
        SAEnum(PoolEntrySource, name="pool_entry_source"),
        nullable=False,
    )
    period_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assignment_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
