"""create absences and coverage requests

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None

absence_kind = sa.Enum("FULL", "PARTIAL", "EARLY_DEPARTURE", "LATE_ARRIVAL", name="absence_kind")
absence_status = sa.Enum("OPEN", "COVERED", "CANCELLED", name="absence_status")
coverage_request_status = sa.Enum("PENDING", "ASSIGNED", "CANCELLED", name="coverage_request_status")


def upgrade() -> None:
    op.create_table(
        "absence_records",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("absence_date", sa.Date(), nullable=False),
        sa.Column("kind", absence_kind, nullable=False),
        sa.Column("status", absence_status, nullable=False),
        sa.Column("affected_periods", sa.JSON(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("effective_from", sa.String(length=5), nullable=True),
        sa.Column("effective_to", sa.String(length=5), nullable=True),
        sa.Column("partial_pattern", sa.String(length=20), nullable=True),
        sa.Column("partial_type", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("teacher_id", "absence_date", name="uq_absence_record_teacher_date"),
    )
    op.create_index("ix_absence_records_teacher_id", "absence_records", ["teacher_id"], unique=False)
    op.create_index("ix_absence_records_absence_date", "absence_records", ["absence_date"], unique=False)

    op.create_table(
        "coverage_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("request_date", sa.Date(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("absent_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("absence_id", sa.String(length=36), nullable=False),
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=True),
        sa.Column("status", coverage_request_status, nullable=False),
        sa.Column("assigned_substitute_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_coverage_requests_request_date", "coverage_requests", ["request_date"], unique=False)
    op.create_index("ix_coverage_requests_absent_teacher_id", "coverage_requests", ["absent_teacher_id"], unique=False)
    op.create_index("ix_coverage_requests_absence_id", "coverage_requests", ["absence_id"], unique=False)
    op.create_index("ix_coverage_requests_status", "coverage_requests", ["status"], unique=False)
    op.create_index(
        "ix_coverage_requests_assigned_substitute_id",
        "coverage_requests",
        ["assigned_substitute_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_coverage_requests_assigned_substitute_id", table_name="coverage_requests")
    op.drop_index("ix_coverage_requests_status", table_name="coverage_requests")
    op.drop_index("ix_coverage_requests_absence_id", table_name="coverage_requests")
    op.drop_index("ix_coverage_requests_absent_teacher_id", table_name="coverage_requests")
    op.drop_index("ix_coverage_requests_request_date", table_name="coverage_requests")
    op.drop_table("coverage_requests")
    op.drop_index("ix_absence_records_absence_date", table_name="absence_records")
    op.drop_index("ix_absence_records_teacher_id", table_name="absence_records")
    op.drop_table("absence_records")
    coverage_request_status.drop(op.get_bind(), checkfirst=True)
    absence_status.drop(op.get_bind(), checkfirst=True)
    absence_kind.drop(op.get_bind(), checkfirst=True)
