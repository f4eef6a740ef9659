"""FastAPI dependencies for identity and exam-app launch sessions."""

from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.security import verify_access_token
from app.models.exam_app import ExamAppLaunchSession
from app.models.user import User, UserRole
from app.services.exam_app.errors import InvalidLaunchSession
from app.services.exam_app.launch import get_live_launch_session

LAUNCH_TOKEN_HEADER = "X-Exam-Launch-Token"


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    db: Session = Depends(get_db),
) -> User:
    """Dependency to get the current authenticated user from a Bearer JWT."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
        )

    # Extract token from "Bearer <token>"
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid authorization scheme")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
        ) from None

    try:
        payload = verify_access_token(token)
        user_id = UUID(payload["sub"])
        role = payload["role"]
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        ) from e

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    # Token role doesn't match DB role - token is stale
    if user.role != role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token role mismatch. Please login again.",
        )

    return user


def require_roles(*allowed_roles: UserRole):
    """Dependency factory to require specific roles."""

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if UserRole(current_user.role) not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}",
            )
        return current_user

    return role_checker


get_current_student = require_roles(UserRole.STUDENT)
get_current_instructor = require_roles(UserRole.INSTRUCTOR, UserRole.ADMIN)


def get_launch_session(
    launch_token: Annotated[str | None, Header(alias=LAUNCH_TOKEN_HEADER)] = None,
    current_user: User = Depends(get_current_student),
    db: Session = Depends(get_db),
) -> ExamAppLaunchSession:
    """Live launch session presented by the exam client in ``X-Exam-Launch-Token``."""
    session = get_live_launch_session(db, launch_token, student_id=current_user.id)
    if session is None:
        raise InvalidLaunchSession()
    return session
