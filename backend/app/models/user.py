"""User model."""

import uuid
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class UserRole(str, Enum):
    """User role enum."""

    STUDENT = "STUDENT"
    INSTRUCTOR = "INSTRUCTOR"
    ADMIN = "ADMIN"


class User(Base):
    """Platform account: students take exams, instructors own exams and codes."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.STUDENT.value)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=func.now(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def display_name(self) -> str:
        """Name shown to students (falls back to email)."""
        return self.full_name or self.email

    # Credentials are owned by the student and go with the account
    exam_app_authorizations = relationship(
        "ExamAppAuthorization",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True,
        foreign_keys="ExamAppAuthorization.student_id",
    )
    exam_app_launch_sessions = relationship(
        "ExamAppLaunchSession",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
