"""Exam access authorization and launch-session lifecycle."""

from app.services.exam_app.authorization import AuthorizationGrant, authorize
from app.services.exam_app.code_registry import create_exam_code, find_code, resolve_code
from app.services.exam_app.errors import ExamAppError
from app.services.exam_app.launch import (
    LaunchGrant,
    finalize_attempt,
    get_live_launch_session,
    start,
    validate_launch_token,
)
from app.services.exam_app.sweep import SweepResult, sweep_expired_tokens

__all__ = [
    "AuthorizationGrant",
    "ExamAppError",
    "LaunchGrant",
    "SweepResult",
    "authorize",
    "create_exam_code",
    "finalize_attempt",
    "find_code",
    "get_live_launch_session",
    "resolve_code",
    "start",
    "sweep_expired_tokens",
    "validate_launch_token",
]
