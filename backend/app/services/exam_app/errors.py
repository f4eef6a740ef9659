"""Failures of the exam access flow.

Every error is recoverable at the API boundary and is rendered as a
``{success: false, error, errorCode}`` payload. Messages are safe to show to
students; they never reveal which internal check failed for a bad code.
"""

from fastapi import status


class ExamAppError(Exception):
    """Base class for exam-app failures."""

    code = "EXAM_APP_ERROR"
    message = "Request failed."
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidCode(ExamAppError):
    """Code unknown, expired, retired or exhausted (deliberately indistinguishable)."""

    code = "INVALID_CODE"
    message = "Invalid or expired exam code."


class TeacherPasswordRequired(ExamAppError):
    code = "TEACHER_PASSWORD_REQUIRED"
    message = "Teacher password is required."


class TeacherPasswordInvalid(ExamAppError):
    code = "TEACHER_PASSWORD_INVALID"
    message = "Teacher authorization failed."


class InvalidOrExpiredAuthorization(ExamAppError):
    code = "INVALID_OR_EXPIRED_AUTHORIZATION"
    message = "Authorization token is invalid or expired."


class AttemptAlreadyFinalized(ExamAppError):
    code = "ATTEMPT_ALREADY_FINALIZED"
    message = "This exam attempt has already been finalized."


class StorageConflict(ExamAppError):
    """A concurrent request won the race for the same row."""

    code = "STORAGE_CONFLICT"
    message = "The request conflicted with a concurrent request. Please retry."


class ExamAppServerError(ExamAppError):
    code = "SERVER_ERROR"
    message = "The request failed due to a server error."


class InvalidLaunchSession(ExamAppError):
    """Launch token missing, expired, revoked, or for another attempt."""

    code = "INVALID_LAUNCH_SESSION"
    message = "Launch session is invalid or has expired."
    status_code = status.HTTP_401_UNAUTHORIZED
