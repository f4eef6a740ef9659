"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point them at an in-memory database first
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", "sqlite://")
os.environ["ENV"] = "test"
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-not-for-production")
os.environ.setdefault("TOKEN_PEPPER", "test-token-pepper")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from app.db.base import Base  # noqa: E402
from app.db.engine import engine  # noqa: E402
from app.db.session import SessionLocal  # noqa: E402
from app.main import app  # noqa: E402
from app.models.exam import Exam  # noqa: E402
from app.models.user import User  # noqa: E402
from tests.helpers.auth import auth_headers  # noqa: E402
from tests.helpers.seed import (  # noqa: E402
    TEACHER_PASSWORD,
    create_exam,
    create_exam_code,
    create_test_instructor,
    create_test_student,
)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema per test.

    Application code commits, so tests get their own tables instead of a
    rolled-back outer transaction.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """API client sharing the test database."""
    return TestClient(app)


@pytest.fixture
def instructor(db: Session) -> User:
    return create_test_instructor(db)


@pytest.fixture
def student(db: Session) -> User:
    return create_test_student(db)


@pytest.fixture
def exam(db: Session, instructor: User) -> Exam:
    """Gated 60 minute exam with three questions."""
    return create_exam(db, instructor, teacher_password=TEACHER_PASSWORD)


@pytest.fixture
def exam_code(db: Session, exam: Exam):
    return create_exam_code(db, exam)


@pytest.fixture
def student_headers(student: User) -> dict[str, str]:
    return auth_headers(student)


@pytest.fixture
def instructor_headers(instructor: User) -> dict[str, str]:
    return auth_headers(instructor)
