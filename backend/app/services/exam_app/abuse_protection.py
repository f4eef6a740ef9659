"""Brute-force protection for the teacher-password gate.

Failures are counted per (student, exam) inside a rolling window. Reaching the
threshold locks that student out of the exam's gate for a fixed TTL; while
locked, no password is verified at all.
"""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from app.common.clock import as_utc
from app.core.config import settings
from app.core.logging import get_logger
from app.models.exam import Exam
from app.models.exam_app import ExamAppGateFailure
from app.models.programming_exam import ProgrammingExam

logger = get_logger(__name__)


def _gate_criteria(exam: Exam | ProgrammingExam, student_id: UUID) -> tuple:
    return (
        ExamAppGateFailure.student_id == student_id,
        ExamAppGateFailure.exam_id == exam.id,
        ExamAppGateFailure.is_programming_exam == isinstance(exam, ProgrammingExam),
    )


def is_gate_locked(
    db: Session, exam: Exam | ProgrammingExam, student_id: UUID, *, now: datetime
) -> bool:
    """True while the student is locked out of this exam's gate."""
    locked_until = db.execute(
        select(ExamAppGateFailure.locked_until).where(*_gate_criteria(exam, student_id))
    ).scalar_one_or_none()
    return locked_until is not None and as_utc(locked_until) > now


def record_gate_failure(
    db: Session, exam: Exam | ProgrammingExam, student_id: UUID, *, now: datetime
) -> int:
    """
    Count a wrong teacher password; lock the gate once the threshold is reached.

    Flushes but does not commit.

    Returns:
        Failures in the current window
    """
    row = db.execute(
        select(ExamAppGateFailure).where(*_gate_criteria(exam, student_id)).with_for_update()
    ).scalar_one_or_none()

    if row is None:
        row = ExamAppGateFailure(
            student_id=student_id,
            exam_id=exam.id,
            is_programming_exam=isinstance(exam, ProgrammingExam),
        )
        db.add(row)
    if row.window_started_at is None or as_utc(row.window_started_at) + timedelta(
        seconds=settings.EXAM_APP_GATE_FAIL_WINDOW
    ) <= now:
        # Start a new window
        row.failure_count = 0
        row.window_started_at = now
        row.locked_until = None

    row.failure_count += 1
    if row.failure_count >= settings.EXAM_APP_GATE_FAIL_THRESHOLD:
        row.locked_until = now + timedelta(seconds=settings.EXAM_APP_GATE_LOCK_TTL)
        logger.warning(
            "Teacher gate locked due to repeated failures",
            extra={
                "event_type": "exam_app_gate_locked",
                "student_id": str(student_id),
                "exam_id": str(exam.id),
                "failure_count": row.failure_count,
                "lock_ttl": settings.EXAM_APP_GATE_LOCK_TTL,
            },
        )
    db.flush()
    return row.failure_count


def clear_gate_failures(db: Session, exam: Exam | ProgrammingExam, student_id: UUID) -> None:
    """Clear failure counters on a correct password."""
    db.execute(
        delete(ExamAppGateFailure)
        .where(*_gate_criteria(exam, student_id))
        .execution_options(synchronize_session=False)
    )


def sweep_stale_gate_failures(db: Session, *, now: datetime) -> int:
    """Delete counters whose window and lock have both run out. Does not commit."""
    window_start = now - timedelta(seconds=settings.EXAM_APP_GATE_FAIL_WINDOW)
    result = db.execute(
        delete(ExamAppGateFailure)
        .where(
            ExamAppGateFailure.window_started_at <= window_start,
            or_(
                ExamAppGateFailure.locked_until.is_(None),
                ExamAppGateFailure.locked_until <= now,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
