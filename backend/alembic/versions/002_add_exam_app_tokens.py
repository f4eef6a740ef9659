"""Add exam app authorization and launch session tables

Revision ID: 002
Revises: 001
Create Date: 2026-09-01 10:30:00.000000

Token values are never stored; both tables keep a peppered SHA256 hash under a
unique index. Each row references exactly one code (or attempt) of either exam
kind, enforced by a CHECK constraint.
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "exam_app_authorizations",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "exam_code_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("exam_codes.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column(
            "programming_exam_code_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("programming_exam_codes.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("token_hash", sa.String(200), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "authorized_by_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint(
            "(exam_code_id IS NULL AND programming_exam_code_id IS NOT NULL) OR "
            "(exam_code_id IS NOT NULL AND programming_exam_code_id IS NULL)",
            name="ck_exam_app_authorizations_one_code",
        ),
    )
    op.create_index(
        "uq_exam_app_authorizations_token_hash",
        "exam_app_authorizations",
        ["token_hash"],
        unique=True,
    )
    op.create_index(
        "ix_exam_app_authorizations_student_expires",
        "exam_app_authorizations",
        ["student_id", "expires_at"],
    )
    op.create_index(
        "ix_exam_app_authorizations_expires_at", "exam_app_authorizations", ["expires_at"]
    )

    op.create_table(
        "exam_app_launch_sessions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "exam_attempt_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("exam_attempts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "programming_exam_attempt_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("programming_exam_attempts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("token_hash", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "(exam_attempt_id IS NULL AND programming_exam_attempt_id IS NOT NULL) OR "
            "(exam_attempt_id IS NOT NULL AND programming_exam_attempt_id IS NULL)",
            name="ck_exam_app_launch_sessions_one_attempt",
        ),
    )
    op.create_index(
        "uq_exam_app_launch_sessions_token_hash",
        "exam_app_launch_sessions",
        ["token_hash"],
        unique=True,
    )
    op.create_index(
        "ix_exam_app_launch_sessions_attempt_expires",
        "exam_app_launch_sessions",
        ["exam_attempt_id", "expires_at"],
    )
    op.create_index(
        "ix_exam_app_launch_sessions_prog_attempt_expires",
        "exam_app_launch_sessions",
        ["programming_exam_attempt_id", "expires_at"],
    )
    op.create_index(
        "ix_exam_app_launch_sessions_expires_at", "exam_app_launch_sessions", ["expires_at"]
    )


def downgrade() -> None:
    op.drop_table("exam_app_launch_sessions")
    op.drop_table("exam_app_authorizations")
