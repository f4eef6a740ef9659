"""Create users, exams and programming exams tables

Revision ID: 001
Revises:
Create Date: 2026-09-01 10:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

IN_PROGRESS = sa.text("status = 'IN_PROGRESS'")


def _timestamp(name: str, nullable: bool = True, server_now: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_now else None,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="STUDENT"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp("created_at", nullable=False, server_now=True),
        _timestamp("updated_at", nullable=False, server_now=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    attempt_status = sa.Enum(
        "IN_PROGRESS", "COMPLETED", "ABANDONED", "TIME_EXPIRED", name="attempt_status"
    )

    # Regular exams
    op.create_table(
        "exams",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "teacher_password_required", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("teacher_gate_hash", sa.String(), nullable=True),
        _timestamp("created_at", nullable=False, server_now=True),
    )
    op.create_index("ix_exams_created_by_id", "exams", ["created_by_id"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "exam_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("points", sa.Numeric(18, 2), nullable=False, server_default="1"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_questions_exam_id", "questions", ["exam_id"])

    op.create_table(
        "exam_codes",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column(
            "exam_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_by_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        _timestamp("created_at", nullable=False, server_now=True),
        _timestamp("expires_at", nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.String(500), nullable=True),
        sa.UniqueConstraint("code", name="uq_exam_codes_code"),
    )
    op.create_index("ix_exam_codes_exam_id", "exam_codes", ["exam_id"])
    op.create_index("ix_exam_codes_code_expires_at", "exam_codes", ["code", "expires_at"])

    op.create_table(
        "exam_attempts",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "exam_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", attempt_status, nullable=False, server_default="IN_PROGRESS"),
        _timestamp("started_at", nullable=False),
        _timestamp("submitted_at"),
        sa.Column("total_score", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("exam_code_used", sa.String(20), nullable=True),
    )
    op.create_index("ix_exam_attempts_student_exam", "exam_attempts", ["student_id", "exam_id"])
    op.create_index(
        "uq_exam_attempts_student_exam_in_progress",
        "exam_attempts",
        ["student_id", "exam_id"],
        unique=True,
        postgresql_where=IN_PROGRESS,
        sqlite_where=IN_PROGRESS,
    )

    op.create_table(
        "student_answers",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "attempt_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("exam_attempts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("points_earned", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("is_marked_for_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("answered_at"),
        sa.UniqueConstraint("attempt_id", "question_id", name="uq_student_answer"),
    )
    op.create_index("ix_student_answers_attempt_id", "student_answers", ["attempt_id"])

    # Programming exams
    op.create_table(
        "programming_exams",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_by_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("language", sa.String(30), nullable=False, server_default="java"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "teacher_password_required", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("teacher_gate_hash", sa.String(), nullable=True),
        _timestamp("created_at", nullable=False, server_now=True),
    )
    op.create_index("ix_programming_exams_created_by_id", "programming_exams", ["created_by_id"])

    op.create_table(
        "programming_tasks",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "exam_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("programming_exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("points", sa.Numeric(18, 2), nullable=False, server_default="10"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_programming_tasks_exam_id", "programming_tasks", ["exam_id"])

    op.create_table(
        "programming_exam_codes",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column(
            "exam_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("programming_exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_by_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        _timestamp("created_at", nullable=False, server_now=True),
        _timestamp("expires_at", nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("times_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.String(500), nullable=True),
        sa.UniqueConstraint("code", name="uq_programming_exam_codes_code"),
    )
    op.create_index("ix_programming_exam_codes_exam_id", "programming_exam_codes", ["exam_id"])
    op.create_index(
        "ix_programming_exam_codes_code_expires_at",
        "programming_exam_codes",
        ["code", "expires_at"],
    )

    op.create_table(
        "programming_exam_attempts",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "student_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "exam_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("programming_exams.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "status",
            postgresql.ENUM(
                "IN_PROGRESS",
                "COMPLETED",
                "ABANDONED",
                "TIME_EXPIRED",
                name="attempt_status",
                create_type=False,
            ),
            nullable=False,
            server_default="IN_PROGRESS",
        ),
        _timestamp("started_at", nullable=False),
        _timestamp("submitted_at"),
        _timestamp("last_activity_at"),
        sa.Column("total_score", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("exam_code_used", sa.String(20), nullable=True),
    )
    op.create_index(
        "ix_programming_exam_attempts_student_exam",
        "programming_exam_attempts",
        ["student_id", "exam_id"],
    )
    op.create_index(
        "uq_programming_exam_attempts_student_exam_in_progress",
        "programming_exam_attempts",
        ["student_id", "exam_id"],
        unique=True,
        postgresql_where=IN_PROGRESS,
        sqlite_where=IN_PROGRESS,
    )


def downgrade() -> None:
    op.drop_table("programming_exam_attempts")
    op.drop_table("programming_exam_codes")
    op.drop_table("programming_tasks")
    op.drop_table("programming_exams")
    op.drop_table("student_answers")
    op.drop_table("exam_attempts")
    op.drop_table("exam_codes")
    op.drop_table("questions")
    op.drop_table("exams")
    op.drop_table("users")
    sa.Enum(name="attempt_status").drop(op.get_bind(), checkfirst=True)
