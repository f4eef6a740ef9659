"""Exam app credentials: authorization tokens, launch sessions and gate lockouts.

Token values are never stored; only their peppered SHA256 hashes are.

An authorization belongs to exactly one code and a launch session to exactly
one attempt, of either exam kind. The Python side models that as a tagged
reference (``CodeRef`` / ``AttemptRef``); the table side keeps one nullable
foreign key per kind and a CHECK constraint that exactly one is set. Rows are
built only through ``issue()``/``open()`` which take the reference, never the
raw foreign keys.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Union

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.sql.elements import ColumnElement

from app.db.base import Base


@dataclass(frozen=True)
class ExamCodeRef:
    id: uuid.UUID
    is_programming: ClassVar[bool] = False


@dataclass(frozen=True)
class ProgrammingCodeRef:
    id: uuid.UUID
    is_programming: ClassVar[bool] = True


@dataclass(frozen=True)
class ExamAttemptRef:
    id: uuid.UUID
    is_programming: ClassVar[bool] = False


@dataclass(frozen=True)
class ProgrammingAttemptRef:
    id: uuid.UUID
    is_programming: ClassVar[bool] = True


CodeRef = Union[ExamCodeRef, ProgrammingCodeRef]
AttemptRef = Union[ExamAttemptRef, ProgrammingAttemptRef]

_EXACTLY_ONE_CODE = (
    "(exam_code_id IS NULL AND programming_exam_code_id IS NOT NULL) OR "
    "(exam_code_id IS NOT NULL AND programming_exam_code_id IS NULL)"
)
_EXACTLY_ONE_ATTEMPT = (
    "(exam_attempt_id IS NULL AND programming_exam_attempt_id IS NOT NULL) OR "
    "(exam_attempt_id IS NOT NULL AND programming_exam_attempt_id IS NULL)"
)


class ExamAppAuthorization(Base):
    """Short-lived, single-use credential issued for one (student, code) pair."""

    __tablename__ = "exam_app_authorizations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    exam_code_id = Column(
        Uuid(as_uuid=True), ForeignKey("exam_codes.id", ondelete="RESTRICT"), nullable=True
    )
    programming_exam_code_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("programming_exam_codes.id", ondelete="RESTRICT"),
        nullable=True,
    )
    token_hash = Column(String(200), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)  # exchanged by Start
    revoked_at = Column(DateTime(timezone=True), nullable=True)  # superseded by a newer one
    authorized_by_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    student = relationship(
        "User", back_populates="exam_app_authorizations", foreign_keys=[student_id]
    )
    exam_code = relationship("ExamCode")
    programming_exam_code = relationship("ProgrammingExamCode")

    __table_args__ = (
        CheckConstraint(_EXACTLY_ONE_CODE, name="ck_exam_app_authorizations_one_code"),
        Index("uq_exam_app_authorizations_token_hash", "token_hash", unique=True),
        Index("ix_exam_app_authorizations_student_expires", "student_id", "expires_at"),
        Index("ix_exam_app_authorizations_expires_at", "expires_at"),
    )

    @classmethod
    def issue(
        cls,
        *,
        code_ref: CodeRef,
        student_id: uuid.UUID,
        token_hash: str,
        issued_at: datetime,
        expires_at: datetime,
        authorized_by_id: uuid.UUID | None = None,
    ) -> "ExamAppAuthorization":
        if isinstance(code_ref, ExamCodeRef):
            code_columns = {"exam_code_id": code_ref.id}
        elif isinstance(code_ref, ProgrammingCodeRef):
            code_columns = {"programming_exam_code_id": code_ref.id}
        else:
            raise TypeError(f"Unsupported code reference: {code_ref!r}")
        return cls(
            student_id=student_id,
            token_hash=token_hash,
            issued_at=issued_at,
            expires_at=expires_at,
            authorized_by_id=authorized_by_id,
            **code_columns,
        )

    @property
    def code_ref(self) -> CodeRef:
        if self.exam_code_id is not None:
            return ExamCodeRef(self.exam_code_id)
        return ProgrammingCodeRef(self.programming_exam_code_id)

    @classmethod
    def for_code(cls, code_ref: CodeRef) -> ColumnElement[bool]:
        """SQL predicate selecting rows that reference ``code_ref``."""
        if isinstance(code_ref, ExamCodeRef):
            return cls.exam_code_id == code_ref.id
        return cls.programming_exam_code_id == code_ref.id


class ExamAppLaunchSession(Base):
    """One live exam-client connection to an attempt; at most one unrevoked per attempt."""

    __tablename__ = "exam_app_launch_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    exam_attempt_id = Column(
        Uuid(as_uuid=True), ForeignKey("exam_attempts.id", ondelete="CASCADE"), nullable=True
    )
    programming_exam_attempt_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("programming_exam_attempts.id", ondelete="CASCADE"),
        nullable=True,
    )
    token_hash = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    student = relationship("User", back_populates="exam_app_launch_sessions")
    exam_attempt = relationship("ExamAttempt")
    programming_exam_attempt = relationship("ProgrammingExamAttempt")

    __table_args__ = (
        CheckConstraint(_EXACTLY_ONE_ATTEMPT, name="ck_exam_app_launch_sessions_one_attempt"),
        Index("uq_exam_app_launch_sessions_token_hash", "token_hash", unique=True),
        Index("ix_exam_app_launch_sessions_attempt_expires", "exam_attempt_id", "expires_at"),
        Index(
            "ix_exam_app_launch_sessions_prog_attempt_expires",
            "programming_exam_attempt_id",
            "expires_at",
        ),
        Index("ix_exam_app_launch_sessions_expires_at", "expires_at"),
    )

    @classmethod
    def open(
        cls,
        *,
        attempt_ref: AttemptRef,
        student_id: uuid.UUID,
        token_hash: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> "ExamAppLaunchSession":
        if isinstance(attempt_ref, ExamAttemptRef):
            attempt_columns = {"exam_attempt_id": attempt_ref.id}
        elif isinstance(attempt_ref, ProgrammingAttemptRef):
            attempt_columns = {"programming_exam_attempt_id": attempt_ref.id}
        else:
            raise TypeError(f"Unsupported attempt reference: {attempt_ref!r}")
        return cls(
            student_id=student_id,
            token_hash=token_hash,
            created_at=created_at,
            expires_at=expires_at,
            **attempt_columns,
        )

    @property
    def attempt_ref(self) -> AttemptRef:
        if self.exam_attempt_id is not None:
            return ExamAttemptRef(self.exam_attempt_id)
        return ProgrammingAttemptRef(self.programming_exam_attempt_id)

    @classmethod
    def for_attempt(cls, attempt_ref: AttemptRef) -> ColumnElement[bool]:
        """SQL predicate selecting sessions of ``attempt_ref``."""
        if isinstance(attempt_ref, ExamAttemptRef):
            return cls.exam_attempt_id == attempt_ref.id
        return cls.programming_exam_attempt_id == attempt_ref.id


class ExamAppGateFailure(Base):
    """Failed teacher-password attempts by one student against one exam's gate."""

    __tablename__ = "exam_app_gate_failures"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Either exam kind; no foreign key since the id may point at either table
    exam_id = Column(Uuid(as_uuid=True), nullable=False)
    is_programming_exam = Column(Boolean, nullable=False, default=False)
    failure_count = Column(Integer, nullable=False, default=0)
    window_started_at = Column(DateTime(timezone=True), nullable=False)
    locked_until = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_exam_app_gate_failures_student_exam",
            "student_id",
            "exam_id",
            "is_programming_exam",
            unique=True,
        ),
    )
