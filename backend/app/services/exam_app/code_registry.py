"""Exam code registry: resolving, claiming and creating exam access codes."""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from app.common.clock import as_utc, utcnow
from app.core.config import settings
from app.core.logging import get_logger
from app.models.exam import Exam, ExamCode, Question
from app.models.exam_app import CodeRef, ExamCodeRef, ProgrammingCodeRef
from app.models.programming_exam import ProgrammingExam, ProgrammingExamCode, ProgrammingTask
from app.models.user import User
from app.schemas.exam_app import ExamInfo
from app.services.exam_app.errors import StorageConflict

logger = get_logger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_LENGTH = 20
_GENERATION_ATTEMPTS = 5


@dataclass(frozen=True)
class _CodeKind:
    code_model: Any
    exam_model: Any
    item_model: Any  # questions or tasks, counted for ExamInfo
    ref_type: Any


_REGULAR = _CodeKind(ExamCode, Exam, Question, ExamCodeRef)
_PROGRAMMING = _CodeKind(ProgrammingExamCode, ProgrammingExam, ProgrammingTask, ProgrammingCodeRef)
_KINDS = (_REGULAR, _PROGRAMMING)


def _kind_for_ref(code_ref: CodeRef) -> _CodeKind:
    return _PROGRAMMING if code_ref.is_programming else _REGULAR


@dataclass(frozen=True)
class ResolvedCode:
    """A usable code with its exam, as seen at resolution time."""

    code_ref: CodeRef
    code: str
    exam: Exam | ProgrammingExam
    info: ExamInfo


def usable_code_criteria(code_model: Any, now: datetime) -> ColumnElement[bool]:
    """Active, unexpired, and below its use limit (when it has one)."""
    return and_(
        code_model.is_active.is_(True),
        code_model.expires_at > now,
        or_(code_model.max_uses.is_(None), code_model.times_used < code_model.max_uses),
    )


def normalize_code(code: str | None) -> str:
    """Strip surrounding whitespace; matching stays case-sensitive."""
    return (code or "").strip()


def _build_info(db: Session, kind: _CodeKind, exam: Exam | ProgrammingExam) -> ExamInfo:
    question_count = db.execute(
        select(func.count(kind.item_model.id)).where(kind.item_model.exam_id == exam.id)
    ).scalar_one()
    teacher_name = exam.created_by.display_name if exam.created_by else "Teacher"
    return ExamInfo(
        exam_id=exam.id,
        title=exam.title,
        duration_minutes=exam.duration_minutes,
        question_count=question_count,
        teacher_name=teacher_name,
        is_programming_exam=kind is _PROGRAMMING,
    )


def find_code(db: Session, code: str | None, *, now: datetime | None = None) -> ResolvedCode | None:
    """Resolve a raw code to its exam; None when unknown, expired, retired or exhausted."""
    normalized = normalize_code(code)
    if not normalized or len(normalized) > MAX_CODE_LENGTH:
        return None
    now = now or utcnow()

    for kind in _KINDS:
        row = db.execute(
            select(kind.code_model, kind.exam_model)
            .join(kind.exam_model, kind.code_model.exam_id == kind.exam_model.id)
            .where(
                kind.code_model.code == normalized,
                usable_code_criteria(kind.code_model, now),
                kind.exam_model.is_active.is_(True),
            )
        ).first()
        if row is not None:
            code_row, exam = row
            return ResolvedCode(
                code_ref=kind.ref_type(code_row.id),
                code=code_row.code,
                exam=exam,
                info=_build_info(db, kind, exam),
            )
    return None


def resolve_code(db: Session, code: str | None, *, now: datetime | None = None) -> ExamInfo | None:
    """Exam projection for a usable code, or None (reasons are not distinguished)."""
    resolved = find_code(db, code, now=now)
    return resolved.info if resolved else None


def claim_use(db: Session, code_ref: CodeRef, *, now: datetime | None = None) -> bool:
    """Atomically take one use of a code.

    A single conditional UPDATE ("increment only while usable"), so two
    callers racing for the last use cannot both succeed. Does not commit.
    """
    now = now or utcnow()
    code_model = _kind_for_ref(code_ref).code_model
    result = db.execute(
        update(code_model)
        .where(code_model.id == code_ref.id, usable_code_criteria(code_model, now))
        .values(times_used=code_model.times_used + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_code_row(db: Session, code_ref: CodeRef) -> ExamCode | ProgrammingExamCode | None:
    return db.get(_kind_for_ref(code_ref).code_model, code_ref.id)


def _generate_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _code_exists(db: Session, code: str) -> bool:
    for kind in _KINDS:
        if db.execute(select(kind.code_model.id).where(kind.code_model.code == code)).first():
            return True
    return False


def create_exam_code(
    db: Session,
    *,
    exam: Exam | ProgrammingExam,
    created_by: User,
    expires_at: datetime,
    max_uses: int | None = None,
    description: str | None = None,
) -> ExamCode | ProgrammingExamCode:
    """Create a fresh code for ``exam``, unique across both code tables."""
    kind = _PROGRAMMING if isinstance(exam, ProgrammingExam) else _REGULAR

    for _ in range(_GENERATION_ATTEMPTS):
        code = _generate_code(settings.EXAM_CODE_LENGTH)
        if _code_exists(db, code):
            continue
        code_row = kind.code_model(
            code=code,
            exam_id=exam.id,
            created_by_id=created_by.id,
            expires_at=as_utc(expires_at),
            max_uses=max_uses,
            times_used=0,
            is_active=True,
            description=description,
        )
        db.add(code_row)
        try:
            db.commit()
        except IntegrityError:
            # Same code inserted concurrently; draw again
            db.rollback()
            continue
        logger.info(
            "Exam code created",
            extra={
                "exam_id": str(exam.id),
                "created_by": str(created_by.id),
                "is_programming_exam": kind is _PROGRAMMING,
                "max_uses": max_uses,
            },
        )
        return code_row

    raise StorageConflict("Could not allocate a unique exam code. Please retry.")
