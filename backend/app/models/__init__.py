"""Database models."""

# Import all models here so Alembic can detect them
from app.models.exam import AttemptStatus, Exam, ExamAttempt, ExamCode, Question, StudentAnswer
from app.models.exam_app import (
    AttemptRef,
    CodeRef,
    ExamAppAuthorization,
    ExamAppGateFailure,
    ExamAppLaunchSession,
    ExamAttemptRef,
    ExamCodeRef,
    ProgrammingAttemptRef,
    ProgrammingCodeRef,
)
from app.models.programming_exam import (
    ProgrammingExam,
    ProgrammingExamAttempt,
    ProgrammingExamCode,
    ProgrammingTask,
)
from app.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "AttemptStatus",
    "Exam",
    "Question",
    "ExamCode",
    "ExamAttempt",
    "StudentAnswer",
    "ProgrammingExam",
    "ProgrammingTask",
    "ProgrammingExamCode",
    "ProgrammingExamAttempt",
    "ExamAppAuthorization",
    "ExamAppLaunchSession",
    "ExamAppGateFailure",
    "CodeRef",
    "AttemptRef",
    "ExamCodeRef",
    "ProgrammingCodeRef",
    "ExamAttemptRef",
    "ProgrammingAttemptRef",
]
