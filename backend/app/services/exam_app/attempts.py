"""Exam attempt lifecycle for the exam app (both exam kinds)."""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.common.clock import as_utc
from app.core.config import settings
from app.core.logging import get_logger
from app.models.exam import AttemptStatus, ExamAttempt, StudentAnswer
from app.models.exam_app import (
    AttemptRef,
    ExamAppLaunchSession,
    ExamAttemptRef,
    ProgrammingAttemptRef,
)
from app.models.programming_exam import ProgrammingExamAttempt
from app.services.exam_app.token_store import launch_tokens

logger = get_logger(__name__)

FINAL_STATUSES = (AttemptStatus.COMPLETED, AttemptStatus.ABANDONED, AttemptStatus.TIME_EXPIRED)


def attempt_model(is_programming: bool) -> Any:
    return ProgrammingExamAttempt if is_programming else ExamAttempt


def ref_of(attempt: ExamAttempt | ProgrammingExamAttempt) -> AttemptRef:
    """Tagged reference for an attempt row."""
    if isinstance(attempt, ProgrammingExamAttempt):
        return ProgrammingAttemptRef(attempt.id)
    return ExamAttemptRef(attempt.id)


def attempt_deadline(attempt: ExamAttempt | ProgrammingExamAttempt, duration_minutes: int) -> datetime:
    """Time after which an in-progress attempt counts as overdue."""
    return as_utc(attempt.started_at) + timedelta(
        minutes=duration_minutes + settings.EXAM_APP_LAUNCH_GRACE_MINUTES
    )


def launch_expiry(
    attempt: ExamAttempt | ProgrammingExamAttempt, duration_minutes: int, now: datetime
) -> datetime:
    """Launch sessions live until the attempt deadline, never less than the minimum window.

    The deadline is measured from the attempt start, so a resumed attempt keeps
    its original end time.
    """
    floor = now + timedelta(minutes=settings.EXAM_APP_LAUNCH_MIN_MINUTES)
    return max(attempt_deadline(attempt, duration_minutes), floor)


def load_attempt(db: Session, attempt_ref: AttemptRef, *, for_update: bool = False):
    model = attempt_model(attempt_ref.is_programming)
    stmt = select(model).where(model.id == attempt_ref.id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def has_finalized_attempt(db: Session, *, is_programming: bool, student_id: UUID, exam_id: UUID) -> bool:
    """True when the student already has a closed attempt for this exam."""
    model = attempt_model(is_programming)
    row = db.execute(
        select(model.id).where(
            model.student_id == student_id,
            model.exam_id == exam_id,
            model.status.in_(FINAL_STATUSES),
        )
    ).first()
    return row is not None


def find_in_progress_attempt(
    db: Session,
    *,
    is_programming: bool,
    student_id: UUID,
    exam_id: UUID,
    for_update: bool = False,
):
    model = attempt_model(is_programming)
    stmt = select(model).where(
        model.student_id == student_id,
        model.exam_id == exam_id,
        model.status == AttemptStatus.IN_PROGRESS,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def close_attempt(
    db: Session,
    attempt: ExamAttempt | ProgrammingExamAttempt,
    status: AttemptStatus,
    now: datetime,
) -> int:
    """Move an attempt to a final status and revoke all of its launch sessions.

    Returns the number of sessions revoked. Does not commit.
    """
    attempt.status = status
    attempt.submitted_at = now
    revoked = launch_tokens.invalidate_where(
        db, ExamAppLaunchSession.for_attempt(ref_of(attempt)), now=now
    )
    db.flush()
    logger.info(
        "Exam attempt closed",
        extra={
            "attempt_id": str(attempt.id),
            "status": status.value,
            "revoked_sessions": revoked,
        },
    )
    return revoked


def expire_if_overdue(
    db: Session,
    attempt: ExamAttempt | ProgrammingExamAttempt,
    duration_minutes: int,
    now: datetime,
) -> bool:
    """Lazily move an overdue in-progress attempt to TIME_EXPIRED. Does not commit."""
    if attempt.status != AttemptStatus.IN_PROGRESS:
        return False
    if now < attempt_deadline(attempt, duration_minutes):
        return False
    close_attempt(db, attempt, AttemptStatus.TIME_EXPIRED, now)
    return True


def create_attempt(
    db: Session,
    *,
    is_programming: bool,
    student_id: UUID,
    exam: Any,
    code: str,
    now: datetime,
) -> ExamAttempt | ProgrammingExamAttempt:
    """Insert a new in-progress attempt; regular attempts get one empty answer per question.

    The partial unique index on (student, exam) for IN_PROGRESS rows rejects a
    concurrent duplicate with IntegrityError at flush. Does not commit.
    """
    model = attempt_model(is_programming)
    attempt = model(
        student_id=student_id,
        exam_id=exam.id,
        status=AttemptStatus.IN_PROGRESS,
        started_at=now,
        total_score=0,
        exam_code_used=code,
    )
    if is_programming:
        attempt.last_activity_at = now
    db.add(attempt)
    db.flush()

    if not is_programming:
        for question in exam.questions:
            db.add(
                StudentAnswer(
                    attempt_id=attempt.id,
                    question_id=question.id,
                    points_earned=0,
                    is_marked_for_review=False,
                    is_completed=False,
                )
            )
        db.flush()

    logger.info(
        "Exam attempt created",
        extra={
            "attempt_id": str(attempt.id),
            "exam_id": str(exam.id),
            "student_id": str(student_id),
            "is_programming_exam": is_programming,
        },
    )
    return attempt
