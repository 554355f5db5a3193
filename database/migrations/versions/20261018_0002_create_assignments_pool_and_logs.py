"""create coverage assignments, daily pool and substitution logs

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None

pool_entry_source = sa.Enum("SUBSTITUTE_ASSIGNMENT", "MANUAL_ADD", "EXTERNAL_POOL", name="pool_entry_source")
substitution_kind = sa.Enum(
    "assign_internal",
    "assign_external",
    "assign_distribution",
    "class_swap",
    name="substitution_kind",
)


def upgrade() -> None:
    op.create_table(
        "coverage_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("coverage_request_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_id", sa.String(length=36), nullable=False),
        sa.Column("assignment_date", sa.Date(), nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=False),
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column("absent_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("absence_id", sa.String(length=36), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_coverage_assignments_coverage_request_id",
        "coverage_assignments",
        ["coverage_request_id"],
        unique=False,
    )
    op.create_index("ix_coverage_assignments_substitute_id", "coverage_assignments", ["substitute_id"], unique=False)
    op.create_index("ix_coverage_assignments_assignment_date", "coverage_assignments", ["assignment_date"], unique=False)

    op.create_table(
        "daily_pool_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("pool_date", sa.Date(), nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("source", pool_entry_source, nullable=False),
        sa.Column("period_id", sa.Integer(), nullable=True),
        sa.Column("assignment_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_daily_pool_entries_pool_date", "daily_pool_entries", ["pool_date"], unique=False)
    op.create_index("ix_daily_pool_entries_teacher_id", "daily_pool_entries", ["teacher_id"], unique=False)

    op.create_table(
        "substitution_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("log_date", sa.Date(), nullable=False),
        sa.Column("period", sa.Integer(), nullable=False),
        sa.Column("class_id", sa.String(length=64), nullable=False),
        sa.Column("absent_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("substitute_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_name", sa.String(length=200), nullable=False),
        sa.Column("kind", substitution_kind, nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("mode_context", sa.String(length=100), nullable=False),
        sa.Column("coverage_request_id", sa.String(length=36), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_substitution_logs_log_date", "substitution_logs", ["log_date"], unique=False)
    op.create_index("ix_substitution_logs_substitute_id", "substitution_logs", ["substitute_id"], unique=False)
    op.create_index(
        "ix_substitution_logs_coverage_request_id",
        "substitution_logs",
        ["coverage_request_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_substitution_logs_coverage_request_id", table_name="substitution_logs")
    op.drop_index("ix_substitution_logs_substitute_id", table_name="substitution_logs")
    op.drop_index("ix_substitution_logs_log_date", table_name="substitution_logs")
    op.drop_table("substitution_logs")
    op.drop_index("ix_daily_pool_entries_teacher_id", table_name="daily_pool_entries")
    op.drop_index("ix_daily_pool_entries_pool_date", table_name="daily_pool_entries")
    op.drop_table("daily_pool_entries")
    op.drop_index("ix_coverage_assignments_assignment_date", table_name="coverage_assignments")
    op.drop_index("ix_coverage_assignments_substitute_id", table_name="coverage_assignments")
    op.drop_index("ix_coverage_assignments_coverage_request_id", table_name="coverage_assignments")
    op.drop_table("coverage_assignments")
    substitution_kind.drop(op.get_bind(), checkfirst=True)
    pool_entry_source.drop(op.get_bind(), checkfirst=True)
