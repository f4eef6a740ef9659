"""Regular (multiple choice) exam models: exams, codes, attempts."""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class AttemptStatus(str, PyEnum):
    """Exam attempt status (shared by regular and programming attempts)."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    TIME_EXPIRED = "TIME_EXPIRED"


# Partial-index predicate: one live attempt per (student, exam)
IN_PROGRESS_PREDICATE = text("status = 'IN_PROGRESS'")


class Exam(Base):
    """A multiple choice exam owned by an instructor."""

    __tablename__ = "exams"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    created_by_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    duration_minutes = Column(Integer, nullable=False, default=120)
    is_active = Column(Boolean, nullable=False, default=True)

    # Teacher gating: the proctor types a password on the student's machine
    teacher_password_required = Column(Boolean, nullable=False, default=True)
    teacher_gate_hash = Column(String, nullable=True)  # Argon2; falls back to creator's password

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    created_by = relationship("User")
    questions = relationship(
        "Question", back_populates="exam", cascade="all, delete-orphan", order_by="Question.order"
    )
    codes = relationship("ExamCode", back_populates="exam", cascade="all, delete-orphan")
    attempts = relationship("ExamAttempt", back_populates="exam", cascade="all, delete-orphan")


class Question(Base):
    """Exam question (content authoring lives elsewhere; only identity and weight here)."""

    __tablename__ = "questions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(
        Uuid(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_text = Column(Text, nullable=False)
    points = Column(Numeric(18, 2), nullable=False, default=1)
    order = Column(Integer, nullable=False, default=0)

    exam = relationship("Exam", back_populates="questions")


class ExamCode(Base):
    """Redeemable code unlocking one exam until it expires or runs out of uses."""

    __tablename__ = "exam_codes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(20), nullable=False)
    exam_id = Column(
        Uuid(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    max_uses = Column(Integer, nullable=True)  # null = unlimited
    times_used = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(String(500), nullable=True)

    exam = relationship("Exam", back_populates="codes")
    created_by = relationship("User")

    __table_args__ = (
        UniqueConstraint("code", name="uq_exam_codes_code"),
        Index("ix_exam_codes_code_expires_at", "code", "expires_at"),
    )


class ExamAttempt(Base):
    """A student's sitting of an exam."""

    __tablename__ = "exam_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    exam_id = Column(
        Uuid(as_uuid=True), ForeignKey("exams.id", ondelete="CASCADE"), nullable=False
    )
    status = Column(
        Enum(AttemptStatus, name="attempt_status"),
        nullable=False,
        default=AttemptStatus.IN_PROGRESS,
    )
    started_at = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    total_score = Column(Numeric(18, 2), nullable=False, default=0)
    exam_code_used = Column(String(20), nullable=True)

    exam = relationship("Exam", back_populates="attempts")
    student = relationship("User")
    answers = relationship(
        "StudentAnswer", back_populates="attempt", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_exam_attempts_student_exam", "student_id", "exam_id"),
        Index(
            "uq_exam_attempts_student_exam_in_progress",
            "student_id",
            "exam_id",
            unique=True,
            postgresql_where=IN_PROGRESS_PREDICATE,
            sqlite_where=IN_PROGRESS_PREDICATE,
        ),
    )


class StudentAnswer(Base):
    """Per-question answer slot of an attempt, seeded empty when the attempt starts."""

    __tablename__ = "student_answers"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    attempt_id = Column(
        Uuid(as_uuid=True), ForeignKey("exam_attempts.id", ondelete="CASCADE"), nullable=False
    )
    question_id = Column(
        Uuid(as_uuid=True), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    points_earned = Column(Numeric(18, 2), nullable=False, default=0)
    is_marked_for_review = Column(Boolean, nullable=False, default=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    answered_at = Column(DateTime(timezone=True), nullable=True)

    attempt = relationship("ExamAttempt", back_populates="answers")
    question = relationship("Question")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_student_answer"),
        Index("ix_student_answers_attempt_id", "attempt_id"),
    )
