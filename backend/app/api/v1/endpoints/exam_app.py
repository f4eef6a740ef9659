"""Exam app endpoints: code lookup, authorize, start, launch validation, finalize."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.common.clock import as_utc, utcnow
from app.core.app_exceptions import raise_app_error
from app.core.dependencies import (
    get_current_instructor,
    get_current_student,
    get_launch_session,
)
from app.core.security_logging import log_security_event
from app.db.session import get_db
from app.models.exam import Exam
from app.models.exam_app import ExamAppLaunchSession
from app.models.programming_exam import ProgrammingExam
from app.models.user import User, UserRole
from app.schemas.exam_app import (
    AuthorizeRequest,
    AuthorizeResponse,
    CreateExamCodeRequest,
    CreateExamCodeResponse,
    ExamCodeInfoResponse,
    FinalizeAttemptResponse,
    StartRequest,
    StartResponse,
    ValidateLaunchRequest,
    ValidateLaunchResponse,
)
from app.services.exam_app import (
    authorize,
    create_exam_code,
    finalize_attempt,
    resolve_code,
    start,
    validate_launch_token,
)
from app.services.exam_app.errors import ExamAppError, InvalidCode, InvalidLaunchSession

router = APIRouter(tags=["Exam App"])


@router.get(
    "/code/{code}",
    response_model=ExamCodeInfoResponse,
    status_code=status.HTTP_200_OK,
    summary="Look up an exam code",
    description="Resolve an exam code to the exam it unlocks. 404 when unknown, expired or used up.",
)
async def get_exam_info(
    request: Request,
    code: str,
    current_user: User = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> ExamCodeInfoResponse:
    """Resolve a code without consuming it."""
    exam = resolve_code(db, code)
    if exam is None:
        log_security_event(
            request,
            event_type="exam_app_code_lookup",
            outcome="deny",
            reason_code=InvalidCode.code,
            user_id=str(current_user.id),
        )
        raise InvalidCode(status_code=status.HTTP_404_NOT_FOUND)

    log_security_event(
        request,
        event_type="exam_app_code_lookup",
        outcome="allow",
        user_id=str(current_user.id),
        exam_id=str(exam.exam_id),
    )
    return ExamCodeInfoResponse(success=True, exam=exam)


@router.post(
    "/authorize",
    response_model=AuthorizeResponse,
    status_code=status.HTTP_200_OK,
    summary="Authorize an exam code",
    description="Exchange an exam code (and teacher password, when gated) for a short-lived authorization token.",
)
async def authorize_exam(
    request_data: AuthorizeRequest,
    request: Request,
    current_user: User = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> AuthorizeResponse:
    """Issue a single-use authorization token."""
    try:
        grant = authorize(db, current_user.id, request_data.code, request_data.teacher_password)
    except ExamAppError as e:
        log_security_event(
            request,
            event_type="exam_app_authorize",
            outcome="deny",
            reason_code=e.code,
            user_id=str(current_user.id),
        )
        raise

    log_security_event(
        request,
        event_type="exam_app_authorize",
        outcome="allow",
        user_id=str(current_user.id),
        exam_id=str(grant.exam.exam_id),
    )
    return AuthorizeResponse(
        success=True,
        authorization_token=grant.token,
        expires_at_utc=grant.expires_at,
        exam=grant.exam,
    )


@router.post(
    "/start",
    response_model=StartResponse,
    status_code=status.HTTP_200_OK,
    summary="Start or resume an exam attempt",
    description="Consume an authorization token; returns the attempt and a launch token for the exam client.",
)
async def start_exam(
    request_data: StartRequest,
    request: Request,
    current_user: User = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> StartResponse:
    """Open a launch session, revoking any earlier one for the same attempt."""
    try:
        grant = start(db, current_user.id, request_data.authorization_token)
    except ExamAppError as e:
        log_security_event(
            request,
            event_type="exam_app_start",
            outcome="deny",
            reason_code=e.code,
            user_id=str(current_user.id),
        )
        raise

    log_security_event(
        request,
        event_type="exam_app_start",
        outcome="allow",
        user_id=str(current_user.id),
        attempt_id=str(grant.attempt_id),
        resumed=grant.resumed,
    )
    return StartResponse(
        success=True,
        attempt_id=grant.attempt_id,
        launch_token=grant.launch_token,
        expires_at_utc=grant.expires_at,
        is_programming_exam=grant.is_programming_exam,
    )


@router.post(
    "/validate",
    response_model=ValidateLaunchResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate a launch token",
)
async def validate_launch(
    request_data: ValidateLaunchRequest,
    request: Request,
    current_user: User = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> ValidateLaunchResponse:
    """Check that a launch token is the live session of the student's attempt."""
    valid = validate_launch_token(
        db,
        attempt_id=request_data.attempt_id,
        student_id=current_user.id,
        launch_token=request_data.launch_token,
    )
    log_security_event(
        request,
        event_type="exam_app_validate",
        outcome="allow" if valid else "deny",
        reason_code=None if valid else InvalidLaunchSession.code,
        user_id=str(current_user.id),
        attempt_id=str(request_data.attempt_id),
    )
    return ValidateLaunchResponse(success=True, valid=valid)


@router.post(
    "/attempts/{attempt_id}/finalize",
    response_model=FinalizeAttemptResponse,
    status_code=status.HTTP_200_OK,
    summary="Finalize an exam attempt",
    description="Submit the attempt behind the launch token in X-Exam-Launch-Token and revoke its sessions.",
)
async def finalize_exam_attempt(
    attempt_id: UUID,
    request: Request,
    launch_session: ExamAppLaunchSession = Depends(get_launch_session),
    db: Session = Depends(get_db),
) -> FinalizeAttemptResponse:
    """Close the attempt; later validation of any of its launch tokens fails."""
    user_id = str(launch_session.student_id)
    try:
        if launch_session.attempt_ref.id != attempt_id:
            raise InvalidLaunchSession()
        attempt = finalize_attempt(db, launch_session)
    except ExamAppError as e:
        log_security_event(
            request,
            event_type="exam_app_finalize",
            outcome="deny",
            reason_code=e.code,
            user_id=user_id,
            attempt_id=str(attempt_id),
        )
        raise

    log_security_event(
        request,
        event_type="exam_app_finalize",
        outcome="allow",
        user_id=user_id,
        attempt_id=str(attempt_id),
        status=attempt.status.value,
    )
    return FinalizeAttemptResponse(
        success=True,
        attempt_id=attempt.id,
        status=attempt.status.value,
        submitted_at_utc=attempt.submitted_at,
    )


@router.post(
    "/codes",
    response_model=CreateExamCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an exam code",
    description="Generate a new access code for an exam owned by the caller (admins: any exam).",
)
async def create_code(
    request_data: CreateExamCodeRequest,
    current_user: User = Depends(get_current_instructor),
    db: Session = Depends(get_db),
) -> CreateExamCodeResponse:
    """Create an exam code."""
    exam_model = ProgrammingExam if request_data.is_programming_exam else Exam
    exam = db.get(exam_model, request_data.exam_id)
    if exam is None:
        raise_app_error(status.HTTP_404_NOT_FOUND, "EXAM_NOT_FOUND", "Exam not found")
    if current_user.role != UserRole.ADMIN.value and exam.created_by_id != current_user.id:
        raise_app_error(
            status.HTTP_403_FORBIDDEN, "FORBIDDEN", "Only the exam owner can create codes"
        )

    expires_at = as_utc(request_data.expires_at_utc)
    if expires_at <= utcnow():
        raise_app_error(
            status.HTTP_400_BAD_REQUEST, "INVALID_EXPIRY", "Expiry must be in the future"
        )

    code_row = create_exam_code(
        db,
        exam=exam,
        created_by=current_user,
        expires_at=expires_at,
        max_uses=request_data.max_uses,
        description=request_data.description,
    )
    return CreateExamCodeResponse(
        success=True,
        code=code_row.code,
        expires_at_utc=expires_at,
        max_uses=code_row.max_uses,
    )
