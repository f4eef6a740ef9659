"""Tests for the authorization issuer."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from app.common.clock import as_utc, utcnow
from app.core.config import settings as app_settings
from app.core.security import hash_token
from app.models.exam_app import ExamAppAuthorization, ExamAppGateFailure, ExamCodeRef
from app.services.exam_app import authorization as authorization_module
from app.services.exam_app.authorization import authorize, authorization_ttl
from app.services.exam_app.errors import (
    AttemptAlreadyFinalized,
    InvalidCode,
    TeacherPasswordInvalid,
    TeacherPasswordRequired,
)
from app.services.exam_app.launch import finalize_attempt, get_live_launch_session, start
from app.services.exam_app.token_store import authorization_tokens
from tests.helpers.seed import (
    INSTRUCTOR_PASSWORD,
    TEACHER_PASSWORD,
    create_exam,
    create_exam_code,
    create_programming_exam,
    create_test_student,
)


def _times_used(db, code_row) -> int:
    db.expire_all()
    return db.get(type(code_row), code_row.id).times_used


def test_authorize_issues_token(db, student, exam, exam_code):
    now = utcnow()

    grant = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=now)

    assert grant.token
    assert grant.expires_at == now + timedelta(minutes=10)
    assert grant.exam.exam_id == exam.id
    record = authorization_tokens.lookup(db, grant.token, now=now)
    assert record.student_id == student.id
    assert record.code_ref == ExamCodeRef(exam_code.id)
    assert record.authorized_by_id == exam.created_by_id
    assert _times_used(db, exam_code) == 1


def test_plaintext_token_is_never_stored(db, student, exam_code):
    grant = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD)

    rows = db.execute(select(ExamAppAuthorization)).scalars().all()
    assert [row.token_hash for row in rows] == [hash_token(grant.token)]
    assert all(grant.token not in str(value) for value in vars(rows[0]).values())


def test_single_use_code_second_authorize_fails(db, student, exam):
    create_exam_code(db, exam, code="MATH101-X", max_uses=1)
    other = create_test_student(db)

    authorize(db, student.id, "MATH101-X", TEACHER_PASSWORD)
    with pytest.raises(InvalidCode):
        authorize(db, other.id, "MATH101-X", TEACHER_PASSWORD)
    with pytest.raises(InvalidCode):
        authorize(db, student.id, "MATH101-X", TEACHER_PASSWORD)


def test_unknown_expired_and_exhausted_codes_fail_alike(db, student, exam):
    create_exam_code(db, exam, code="EXPIRED", expires_in=timedelta(seconds=-1))
    spent = create_exam_code(db, exam, code="SPENT", max_uses=1)
    spent.times_used = 1
    db.commit()

    errors = []
    for code in ("NOPE", "EXPIRED", "SPENT"):
        with pytest.raises(InvalidCode) as exc_info:
            authorize(db, student.id, code, TEACHER_PASSWORD)
        errors.append((exc_info.value.code, exc_info.value.message))

    assert len(set(errors)) == 1


def test_gated_exam_requires_password(db, student, exam_code):
    with pytest.raises(TeacherPasswordRequired):
        authorize(db, student.id, exam_code.code, None)
    with pytest.raises(TeacherPasswordInvalid):
        authorize(db, student.id, exam_code.code, "wrong-password")

    # Failed gate checks consume nothing
    assert _times_used(db, exam_code) == 0
    assert db.execute(select(ExamAppAuthorization)).first() is None


def test_gate_falls_back_to_creator_password(db, student, instructor):
    exam = create_exam(db, instructor)  # no dedicated gate hash
    code_row = create_exam_code(db, exam)

    with pytest.raises(TeacherPasswordInvalid):
        authorize(db, student.id, code_row.code, TEACHER_PASSWORD)
    assert authorize(db, student.id, code_row.code, INSTRUCTOR_PASSWORD).token


def test_gate_with_no_usable_hash_rejects(db, student, instructor):
    instructor.password_hash = None
    db.commit()
    exam = create_exam(db, instructor)
    code_row = create_exam_code(db, exam)

    with pytest.raises(TeacherPasswordInvalid):
        authorize(db, student.id, code_row.code, "anything")


def test_ungated_exam_ignores_password(db, student, instructor):
    exam = create_exam(db, instructor, teacher_password_required=False)
    code_row = create_exam_code(db, exam)

    grant = authorize(db, student.id, code_row.code, None)

    record = authorization_tokens.lookup(db, grant.token)
    assert record.authorized_by_id is None


def test_reauthorize_supersedes_previous_token(db, student, exam_code):
    first = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD)
    second = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD)

    assert authorization_tokens.lookup(db, first.token) is None
    assert authorization_tokens.lookup(db, second.token) is not None
    live = db.execute(
        select(ExamAppAuthorization).where(
            ExamAppAuthorization.student_id == student.id,
            ExamAppAuthorization.revoked_at.is_(None),
            ExamAppAuthorization.used_at.is_(None),
        )
    ).scalars().all()
    assert len(live) == 1
    assert _times_used(db, exam_code) == 2


def test_authorization_ttl_is_shorter_than_exam(db, student, instructor):
    exam = create_exam(db, instructor, duration_minutes=5, teacher_password_required=False)
    code_row = create_exam_code(db, exam)
    now = utcnow()

    grant = authorize(db, student.id, code_row.code, None, now=now)

    assert grant.expires_at == now + timedelta(minutes=4)
    assert authorization_ttl(exam) == timedelta(minutes=4)


@pytest.mark.parametrize(
    ("duration", "expected"),
    [
        (60, timedelta(minutes=10)),
        (11, timedelta(minutes=10)),
        (10, timedelta(minutes=9)),
        (2, timedelta(minutes=1)),
        (1, timedelta(seconds=30)),
    ],
)
def test_authorization_ttl_by_exam_length(db, instructor, duration, expected):
    exam = create_exam(db, instructor, duration_minutes=duration)

    assert authorization_ttl(exam) == expected


def test_finalized_attempt_blocks_new_authorization(db, student, exam_code):
    grant = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD)
    launch = start(db, student.id, grant.token)
    finalize_attempt(db, get_live_launch_session(db, launch.launch_token))

    with pytest.raises(AttemptAlreadyFinalized):
        authorize(db, student.id, exam_code.code, TEACHER_PASSWORD)
    assert _times_used(db, exam_code) == 1


def test_overdue_attempt_is_expired_on_authorize(db, student, exam_code):
    t0 = utcnow()
    grant = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=t0)
    start(db, student.id, grant.token, now=t0)

    # 60 minute exam + 10 minute grace
    with pytest.raises(AttemptAlreadyFinalized):
        authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=t0 + timedelta(minutes=71))


def test_programming_exam_authorization(db, student, instructor):
    exam = create_programming_exam(db, instructor, teacher_password="Lab-Proctor")
    code_row = create_exam_code(db, exam)

    grant = authorize(db, student.id, code_row.code, "Lab-Proctor")

    record = authorization_tokens.lookup(db, grant.token)
    assert record.exam_code_id is None
    assert record.programming_exam_code_id == code_row.id
    assert grant.exam.is_programming_exam is True


def test_expires_at_round_trips_as_utc(db, student, exam_code):
    now = utcnow()
    grant = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=now)

    db.expire_all()
    record = db.execute(select(ExamAppAuthorization)).scalar_one()
    assert as_utc(record.expires_at) == grant.expires_at


def _fail_gate(db, student, code_row, *, now, times):
    for i in range(times):
        with pytest.raises(TeacherPasswordInvalid):
            authorize(db, student.id, code_row.code, f"guess-{i}", now=now)


def test_repeated_gate_failures_lock_out_student(db, student, instructor, monkeypatch):
    exam = create_exam(db, instructor)  # gate falls back to the instructor's login password
    code_row = create_exam_code(db, exam)
    t0 = utcnow()
    _fail_gate(db, student, code_row, now=t0, times=app_settings.EXAM_APP_GATE_FAIL_THRESHOLD)

    def fail_if_called(*args, **kwargs):
        raise AssertionError("password verified while locked out")

    monkeypatch.setattr(authorization_module, "verify_password", fail_if_called)
    with pytest.raises(TeacherPasswordInvalid):
        authorize(db, student.id, code_row.code, INSTRUCTOR_PASSWORD, now=t0)
    monkeypatch.undo()

    assert _times_used(db, code_row) == 0
    row = db.execute(select(ExamAppGateFailure)).scalar_one()
    assert row.failure_count == app_settings.EXAM_APP_GATE_FAIL_THRESHOLD
    assert as_utc(row.locked_until) == t0 + timedelta(seconds=app_settings.EXAM_APP_GATE_LOCK_TTL)


def test_gate_unlocks_after_lock_ttl(db, student, exam_code):
    t0 = utcnow()
    _fail_gate(db, student, exam_code, now=t0, times=app_settings.EXAM_APP_GATE_FAIL_THRESHOLD)
    later = t0 + timedelta(seconds=app_settings.EXAM_APP_GATE_LOCK_TTL + 1)

    grant = authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=later)

    assert grant.token
    assert db.execute(select(ExamAppGateFailure)).first() is None


def test_gate_lockout_is_per_student(db, student, exam_code):
    other = create_test_student(db)
    t0 = utcnow()
    _fail_gate(db, student, exam_code, now=t0, times=app_settings.EXAM_APP_GATE_FAIL_THRESHOLD)

    assert authorize(db, other.id, exam_code.code, TEACHER_PASSWORD, now=t0).token


def test_correct_password_resets_failure_count(db, student, exam_code):
    below_threshold = app_settings.EXAM_APP_GATE_FAIL_THRESHOLD - 1
    t0 = utcnow()
    _fail_gate(db, student, exam_code, now=t0, times=below_threshold)
    authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=t0)
    _fail_gate(db, student, exam_code, now=t0, times=below_threshold)

    assert authorize(db, student.id, exam_code.code, TEACHER_PASSWORD, now=t0).token


def test_failures_outside_window_start_a_new_count(db, student, exam_code):
    below_threshold = app_settings.EXAM_APP_GATE_FAIL_THRESHOLD - 1
    t0 = utcnow()
    _fail_gate(db, student, exam_code, now=t0, times=below_threshold)
    later = t0 + timedelta(seconds=app_settings.EXAM_APP_GATE_FAIL_WINDOW + 1)
    _fail_gate(db, student, exam_code, now=later, times=1)

    row = db.execute(select(ExamAppGateFailure)).scalar_one()
    assert row.failure_count == 1
    assert row.locked_until is None


def test_oversized_teacher_password_is_rejected(db, student, exam_code):
    with pytest.raises(TeacherPasswordInvalid):
        authorize(db, student.id, exam_code.code, "x" * 10_000)
    assert _times_used(db, exam_code) == 0
