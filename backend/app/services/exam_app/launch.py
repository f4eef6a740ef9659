"""Launch session manager: authorization token in, attempt and launch token out."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.logging import get_logger
from app.models.exam import AttemptStatus, ExamAttempt
from app.models.exam_app import ExamAppAuthorization, ExamAppLaunchSession
from app.models.programming_exam import ProgrammingExamAttempt
from app.services.exam_app.attempts import (
    attempt_deadline,
    close_attempt,
    create_attempt,
    expire_if_overdue,
    find_in_progress_attempt,
    has_finalized_attempt,
    launch_expiry,
    load_attempt,
    ref_of,
)
from app.services.exam_app.code_registry import get_code_row
from app.services.exam_app.errors import (
    AttemptAlreadyFinalized,
    ExamAppError,
    ExamAppServerError,
    InvalidOrExpiredAuthorization,
    StorageConflict,
)
from app.services.exam_app.token_store import authorization_tokens, launch_tokens

logger = get_logger(__name__)


@dataclass(frozen=True)
class LaunchGrant:
    """Result of a successful Start. ``launch_token`` is the only plaintext copy."""

    attempt_id: UUID
    launch_token: str
    expires_at: datetime
    is_programming_exam: bool
    resumed: bool


def start(
    db: Session,
    student_id: UUID,
    authorization_token: str | None,
    *,
    now: datetime | None = None,
) -> LaunchGrant:
    """
    Exchange an authorization token for an attempt and a launch token.

    The authorization is consumed exactly once. An in-progress attempt for the
    same (student, exam) is resumed rather than re-created; every earlier
    launch session of that attempt is revoked in the same transaction as the
    new one is inserted, so at most one is live.

    Args:
        db: Database session
        student_id: Authenticated student (must own the authorization)
        authorization_token: Plaintext token returned by Authorize
        now: Override of the current time

    Returns:
        LaunchGrant with the plaintext launch token

    Raises:
        ExamAppError: Any failure, already rolled back
    """
    now = now or utcnow()
    try:
        authorization = authorization_tokens.lookup(
            db,
            authorization_token or "",
            ExamAppAuthorization.student_id == student_id,
            now=now,
        )
        if authorization is None:
            raise InvalidOrExpiredAuthorization()

        code_ref = authorization.code_ref
        is_programming = code_ref.is_programming
        code_row = get_code_row(db, code_ref)
        if code_row is None or not code_row.exam.is_active:
            raise InvalidOrExpiredAuthorization()
        exam = code_row.exam

        if has_finalized_attempt(
            db, is_programming=is_programming, student_id=student_id, exam_id=exam.id
        ):
            raise AttemptAlreadyFinalized()

        attempt = find_in_progress_attempt(
            db,
            is_programming=is_programming,
            student_id=student_id,
            exam_id=exam.id,
            for_update=True,
        )
        if attempt is not None and expire_if_overdue(db, attempt, exam.duration_minutes, now):
            db.commit()
            raise AttemptAlreadyFinalized()

        # Conditional UPDATE on used_at: one winner per token
        if not authorization_tokens.invalidate(db, authorization, column="used_at", now=now):
            raise InvalidOrExpiredAuthorization()

        resumed = attempt is not None
        if attempt is None:
            attempt = create_attempt(
                db,
                is_programming=is_programming,
                student_id=student_id,
                exam=exam,
                code=code_row.code,
                now=now,
            )
        elif is_programming:
            attempt.last_activity_at = now

        attempt_ref = ref_of(attempt)
        revoked = launch_tokens.invalidate_where(
            db, ExamAppLaunchSession.for_attempt(attempt_ref), now=now
        )
        launch_token, token_hash = launch_tokens.issue()
        expires_at = launch_expiry(attempt, exam.duration_minutes, now)
        db.add(
            ExamAppLaunchSession.open(
                attempt_ref=attempt_ref,
                student_id=student_id,
                token_hash=token_hash,
                created_at=now,
                expires_at=expires_at,
            )
        )
        db.commit()
    except ExamAppError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(
            "Launch session insert conflicted",
            extra={"student_id": str(student_id), "error_type": type(e).__name__},
        )
        raise StorageConflict() from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Exam start failed", extra={"student_id": str(student_id)})
        raise ExamAppServerError() from e

    logger.info(
        "Exam app launch session opened",
        extra={
            "student_id": str(student_id),
            "attempt_id": str(attempt.id),
            "is_programming_exam": is_programming,
            "resumed": resumed,
            "revoked_sessions": revoked,
        },
    )
    return LaunchGrant(
        attempt_id=attempt.id,
        launch_token=launch_token,
        expires_at=expires_at,
        is_programming_exam=is_programming,
        resumed=resumed,
    )


def get_live_launch_session(
    db: Session,
    launch_token: str | None,
    *,
    student_id: UUID | None = None,
    now: datetime | None = None,
) -> ExamAppLaunchSession | None:
    """Live (unexpired, unrevoked) session for a launch token, or None."""
    criteria = []
    if student_id is not None:
        criteria.append(ExamAppLaunchSession.student_id == student_id)
    return launch_tokens.lookup(db, launch_token or "", *criteria, now=now)


def validate_launch_token(
    db: Session,
    *,
    attempt_id: UUID,
    student_id: UUID,
    launch_token: str | None,
    now: datetime | None = None,
) -> bool:
    """True only for the live session of this student's in-progress attempt."""
    session = get_live_launch_session(db, launch_token, student_id=student_id, now=now)
    if session is None or session.attempt_ref.id != attempt_id:
        return False
    attempt = load_attempt(db, session.attempt_ref)
    return attempt is not None and attempt.status == AttemptStatus.IN_PROGRESS


def finalize_attempt(
    db: Session,
    launch_session: ExamAppLaunchSession,
    *,
    now: datetime | None = None,
) -> ExamAttempt | ProgrammingExamAttempt:
    """
    Close the attempt behind a live launch session.

    The attempt becomes COMPLETED, or TIME_EXPIRED when submitted past its
    deadline; every launch session of the attempt is revoked.

    Raises:
        AttemptAlreadyFinalized: Attempt is no longer in progress
    """
    now = now or utcnow()
    try:
        attempt = load_attempt(db, launch_session.attempt_ref, for_update=True)
        if attempt is None or attempt.status != AttemptStatus.IN_PROGRESS:
            raise AttemptAlreadyFinalized()

        status = AttemptStatus.COMPLETED
        if now >= attempt_deadline(attempt, attempt.exam.duration_minutes):
            status = AttemptStatus.TIME_EXPIRED
        close_attempt(db, attempt, status, now)
        db.commit()
    except ExamAppError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Finalize failed", extra={"launch_session_id": str(launch_session.id)})
        raise ExamAppServerError() from e
    return attempt
