"""Add teacher gate failure counters

Revision ID: 003
Revises: 002
Create Date: 2026-10-18 09:00:00.000000
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "exam_app_gate_failures",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("exam_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("is_programming_exam", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("window_started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_exam_app_gate_failures_student_exam",
        "exam_app_gate_failures",
        ["student_id", "exam_id", "is_programming_exam"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("uq_exam_app_gate_failures_student_exam", table_name="exam_app_gate_failures")
    op.drop_table("exam_app_gate_failures")
