"""Concurrency tests: racing Authorize and Start calls against a shared database.

Runs on a file-backed database so every thread gets its own connection.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from app.core.security import hash_token
from app.db.base import Base
from app.db.engine import create_db_engine
from app.models.exam import ExamAttempt, ExamCode
from app.models.exam_app import ExamAppAuthorization, ExamAppLaunchSession
from app.services.exam_app.authorization import authorize
from app.services.exam_app.errors import InvalidCode, InvalidOrExpiredAuthorization
from app.services.exam_app.launch import LaunchGrant, start
from tests.helpers.seed import (
    create_exam,
    create_exam_code,
    create_test_instructor,
    create_test_student,
)

THREADS = 8


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


def _race(session_factory, calls):
    """Run ``calls`` (each taking a session) as simultaneously as possible."""
    barrier = threading.Barrier(len(calls))

    def run(call):
        db = session_factory()
        try:
            barrier.wait()
            return call(db)
        except (InvalidCode, InvalidOrExpiredAuthorization) as e:
            return e
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(run, calls))


@pytest.mark.parametrize("max_uses", [1, 3])
def test_exactly_max_uses_authorizations_win(session_factory, max_uses):
    with session_factory() as db:
        instructor = create_test_instructor(db)
        exam = create_exam(db, instructor, teacher_password_required=False)
        code_row = create_exam_code(db, exam, max_uses=max_uses)
        students = [create_test_student(db) for _ in range(THREADS)]

    results = _race(
        session_factory,
        [
            lambda db, sid=student.id: authorize(db, sid, code_row.code, None)
            for student in students
        ],
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidCode)]
    assert len(winners) == max_uses
    assert len(losers) == THREADS - max_uses

    with session_factory() as db:
        assert db.get(ExamCode, code_row.id).times_used == max_uses
        issued = db.execute(select(func.count(ExamAppAuthorization.id))).scalar_one()
        assert issued == max_uses


def test_same_authorization_token_starts_once(session_factory):
    with session_factory() as db:
        instructor = create_test_instructor(db)
        exam = create_exam(db, instructor, teacher_password_required=False)
        code_row = create_exam_code(db, exam)
        student = create_test_student(db)
        token = authorize(db, student.id, code_row.code, None).token

    results = _race(
        session_factory,
        [lambda db: start(db, student.id, token) for _ in range(THREADS)],
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidOrExpiredAuthorization)]
    assert len(winners) == 1
    assert len(losers) == THREADS - 1

    with session_factory() as db:
        assert db.execute(select(func.count(ExamAttempt.id))).scalar_one() == 1
        live = db.execute(
            select(func.count(ExamAppLaunchSession.id)).where(
                ExamAppLaunchSession.revoked_at.is_(None)
            )
        ).scalar_one()
        assert live == 1


def test_racing_resumes_leave_one_live_session(session_factory):
    with session_factory() as db:
        instructor = create_test_instructor(db)
        exam = create_exam(db, instructor, teacher_password_required=False)
        codes = [create_exam_code(db, exam) for _ in range(THREADS + 1)]
        student = create_test_student(db)
        first = start(db, student.id, authorize(db, student.id, codes[0].code, None).token)
        # One live authorization per code, all for the same in-progress attempt
        tokens = [authorize(db, student.id, code_row.code, None).token for code_row in codes[1:]]

    results = _race(
        session_factory,
        [lambda db, token=token: start(db, student.id, token) for token in tokens],
    )

    assert all(isinstance(r, LaunchGrant) for r in results)
    assert {r.attempt_id for r in results} == {first.attempt_id}
    assert all(r.resumed for r in results)

    with session_factory() as db:
        assert db.execute(select(func.count(ExamAttempt.id))).scalar_one() == 1
        live = db.execute(
            select(ExamAppLaunchSession.token_hash).where(
                ExamAppLaunchSession.revoked_at.is_(None)
            )
        ).scalars().all()
        assert len(live) == 1
        assert live[0] in {hash_token(r.launch_token) for r in results}
