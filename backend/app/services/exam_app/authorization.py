"""Authorization issuer: exchanges an exam code for a single-use authorization token."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.config import settings
from app.core.logging import get_logger
from app.core.security import verify_password
from app.models.exam import Exam
from app.models.exam_app import ExamAppAuthorization
from app.models.programming_exam import ProgrammingExam
from app.schemas.exam_app import ExamInfo
from app.services.exam_app.abuse_protection import (
    clear_gate_failures,
    is_gate_locked,
    record_gate_failure,
)
from app.services.exam_app.attempts import (
    expire_if_overdue,
    find_in_progress_attempt,
    has_finalized_attempt,
)
from app.services.exam_app.code_registry import claim_use, find_code
from app.services.exam_app.errors import (
    AttemptAlreadyFinalized,
    ExamAppError,
    ExamAppServerError,
    InvalidCode,
    StorageConflict,
    TeacherPasswordInvalid,
    TeacherPasswordRequired,
)
from app.services.exam_app.token_store import authorization_tokens

logger = get_logger(__name__)

MAX_TEACHER_PASSWORD_LENGTH = 256


@dataclass(frozen=True)
class AuthorizationGrant:
    """Result of a successful Authorize. ``token`` is the only plaintext copy."""

    token: str
    expires_at: datetime
    exam: ExamInfo


def authorization_ttl(exam: Exam | ProgrammingExam) -> timedelta:
    """Authorization lifetime: a few minutes, and strictly shorter than the exam itself."""
    ttl = timedelta(minutes=settings.EXAM_APP_AUTHORIZATION_TTL_MINUTES)
    exam_length = timedelta(minutes=exam.duration_minutes)
    if ttl < exam_length:
        return ttl
    # Whole minutes where the exam allows it; a one-minute exam gets half of it
    return max(exam_length - timedelta(minutes=1), exam_length / 2)


def check_teacher_gate(exam: Exam | ProgrammingExam, teacher_password: str | None) -> UUID | None:
    """
    Verify the proctor's password for a gated exam.

    The gate value is the exam's own Argon2 hash, or the exam creator's account
    password hash when the exam has none.

    Returns:
        The id of the authorizing teacher, or None for ungated exams

    Raises:
        TeacherPasswordRequired: Exam is gated and no password was given
        TeacherPasswordInvalid: Password does not match the gate value
    """
    if not exam.teacher_password_required:
        return None
    if not teacher_password:
        raise TeacherPasswordRequired()

    gate_hash = exam.teacher_gate_hash
    if not gate_hash and exam.created_by is not None:
        gate_hash = exam.created_by.password_hash
    if len(teacher_password) > MAX_TEACHER_PASSWORD_LENGTH or not verify_password(
        teacher_password, gate_hash
    ):
        raise TeacherPasswordInvalid()
    return exam.created_by_id


def pass_teacher_gate(
    db: Session,
    exam: Exam | ProgrammingExam,
    student_id: UUID,
    teacher_password: str | None,
    *,
    now: datetime,
) -> UUID | None:
    """
    Run the teacher gate behind the per-student lockout.

    A wrong password is recorded and committed before the error propagates,
    so the count survives the caller's rollback. While locked out, the
    password is rejected without being verified.
    """
    if not exam.teacher_password_required:
        return None
    if is_gate_locked(db, exam, student_id, now=now):
        logger.warning(
            "Teacher gate attempt while locked",
            extra={"student_id": str(student_id), "exam_id": str(exam.id)},
        )
        raise TeacherPasswordInvalid()

    try:
        authorized_by_id = check_teacher_gate(exam, teacher_password)
    except TeacherPasswordInvalid:
        record_gate_failure(db, exam, student_id, now=now)
        db.commit()
        raise
    clear_gate_failures(db, exam, student_id)
    return authorized_by_id


def authorize(
    db: Session,
    student_id: UUID,
    code: str | None,
    teacher_password: str | None,
    *,
    now: datetime | None = None,
) -> AuthorizationGrant:
    """
    Issue an authorization token for (student, code).

    Takes one use of the code and inserts the authorization row in a single
    transaction. A still-live authorization for the same (student, code) is
    revoked first, so at most one is live per pair.

    Args:
        db: Database session
        student_id: Authenticated student
        code: Raw exam code as typed by the student
        teacher_password: Proctor password for gated exams
        now: Override of the current time

    Returns:
        AuthorizationGrant with the plaintext token

    Raises:
        ExamAppError: Any failure, already rolled back
    """
    now = now or utcnow()
    try:
        resolved = find_code(db, code, now=now)
        if resolved is None:
            raise InvalidCode()

        exam = resolved.exam
        is_programming = resolved.code_ref.is_programming
        authorized_by_id = pass_teacher_gate(db, exam, student_id, teacher_password, now=now)

        if has_finalized_attempt(
            db, is_programming=is_programming, student_id=student_id, exam_id=exam.id
        ):
            raise AttemptAlreadyFinalized()
        attempt = find_in_progress_attempt(
            db, is_programming=is_programming, student_id=student_id, exam_id=exam.id
        )
        if attempt is not None and expire_if_overdue(db, attempt, exam.duration_minutes, now):
            db.commit()
            raise AttemptAlreadyFinalized()

        if not claim_use(db, resolved.code_ref, now=now):
            # Lost the race for the last use, or the code expired meanwhile
            raise InvalidCode()

        superseded = authorization_tokens.invalidate_where(
            db,
            ExamAppAuthorization.student_id == student_id,
            ExamAppAuthorization.for_code(resolved.code_ref),
            now=now,
        )

        token, token_hash = authorization_tokens.issue()
        expires_at = now + authorization_ttl(exam)
        db.add(
            ExamAppAuthorization.issue(
                code_ref=resolved.code_ref,
                student_id=student_id,
                token_hash=token_hash,
                issued_at=now,
                expires_at=expires_at,
                authorized_by_id=authorized_by_id,
            )
        )
        db.commit()
    except ExamAppError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(
            "Authorization insert conflicted",
            extra={"student_id": str(student_id), "error_type": type(e).__name__},
        )
        raise StorageConflict() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Authorization failed", extra={"student_id": str(student_id)})
        raise ExamAppServerError() from e

    logger.info(
        "Exam app authorization issued",
        extra={
            "student_id": str(student_id),
            "exam_id": str(exam.id),
            "is_programming_exam": is_programming,
            "superseded": superseded,
        },
    )
    return AuthorizationGrant(token=token, expires_at=expires_at, exam=resolved.info)
