"""Programming exam models: the second exam kind reachable through the exam app."""

import uuid

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
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.models.exam import IN_PROGRESS_PREDICATE, AttemptStatus


class ProgrammingExam(Base):
    """A project-based programming exam owned by an instructor."""

    __tablename__ = "programming_exams"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    created_by_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    duration_minutes = Column(Integer, nullable=False, default=120)
    language = Column(String(30), nullable=False, default="java")
    is_active = Column(Boolean, nullable=False, default=True)
    teacher_password_required = Column(Boolean, nullable=False, default=True)
    teacher_gate_hash = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    created_by = relationship("User")
    tasks = relationship(
        "ProgrammingTask",
        back_populates="exam",
        cascade="all, delete-orphan",
        order_by="ProgrammingTask.order",
    )
    codes = relationship(
        "ProgrammingExamCode", back_populates="exam", cascade="all, delete-orphan"
    )
    attempts = relationship(
        "ProgrammingExamAttempt", back_populates="exam", cascade="all, delete-orphan"
    )


class ProgrammingTask(Base):
    __tablename__ = "programming_tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    exam_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("programming_exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(200), nullable=False)
    points = Column(Numeric(18, 2), nullable=False, default=10)
    order = Column(Integer, nullable=False, default=0)

    exam = relationship("ProgrammingExam", back_populates="tasks")


class ProgrammingExamCode(Base):
    """Redeemable code for a programming exam; shares the code namespace with ExamCode."""

    __tablename__ = "programming_exam_codes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(20), nullable=False)
    exam_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("programming_exams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    max_uses = Column(Integer, nullable=True)
    times_used = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    description = Column(String(500), nullable=True)

    exam = relationship("ProgrammingExam", back_populates="codes")
    created_by = relationship("User")

    __table_args__ = (
        UniqueConstraint("code", name="uq_programming_exam_codes_code"),
        Index("ix_programming_exam_codes_code_expires_at", "code", "expires_at"),
    )


class ProgrammingExamAttempt(Base):
    __tablename__ = "programming_exam_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    exam_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("programming_exams.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = Column(
        Enum(AttemptStatus, name="attempt_status"),
        nullable=False,
        default=AttemptStatus.IN_PROGRESS,
    )
    started_at = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    total_score = Column(Numeric(18, 2), nullable=False, default=0)
    exam_code_used = Column(String(20), nullable=True)

    exam = relationship("ProgrammingExam", back_populates="attempts")
    student = relationship("User")

    __table_args__ = (
        Index("ix_programming_exam_attempts_student_exam", "student_id", "exam_id"),
        Index(
            "uq_programming_exam_attempts_student_exam_in_progress",
            "student_id",
            "exam_id",
            unique=True,
            postgresql_where=IN_PROGRESS_PREDICATE,
            sqlite_where=IN_PROGRESS_PREDICATE,
        ),
    )
