"""Exam app request/response schemas.

The exam-taking client speaks camelCase JSON; fields are snake_case in Python
and aliased on the wire.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ExamAppSchema(BaseModel):
    """Base schema with camelCase aliases (accepts either form on input)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExamInfo(ExamAppSchema):
    """Read-only projection of the exam a code unlocks."""

    exam_id: UUID
    title: str
    duration_minutes: int
    question_count: int
    teacher_name: str
    is_programming_exam: bool = False


# Request schemas
class AuthorizeRequest(ExamAppSchema):
    code: str | None = None
    teacher_password: str | None = None


class StartRequest(ExamAppSchema):
    authorization_token: str | None = None


class ValidateLaunchRequest(ExamAppSchema):
    attempt_id: UUID
    launch_token: str


class CreateExamCodeRequest(ExamAppSchema):
    exam_id: UUID
    is_programming_exam: bool = False
    expires_at_utc: datetime
    max_uses: int | None = Field(default=None, ge=1)
    description: str | None = Field(default=None, max_length=500)


# Response schemas
class ExamCodeInfoResponse(ExamAppSchema):
    success: bool
    error: str | None = None
    exam: ExamInfo | None = None


class AuthorizeResponse(ExamAppSchema):
    success: bool
    error: str | None = None
    authorization_token: str | None = None
    expires_at_utc: datetime | None = None
    exam: ExamInfo | None = None


class StartResponse(ExamAppSchema):
    success: bool
    error: str | None = None
    attempt_id: UUID | None = None
    launch_token: str | None = None
    expires_at_utc: datetime | None = None
    is_programming_exam: bool = False


class ValidateLaunchResponse(ExamAppSchema):
    success: bool
    valid: bool


class FinalizeAttemptResponse(ExamAppSchema):
    success: bool
    attempt_id: UUID
    status: str
    submitted_at_utc: datetime | None = None


class CreateExamCodeResponse(ExamAppSchema):
    success: bool
    code: str
    expires_at_utc: datetime
    max_uses: int | None = None
