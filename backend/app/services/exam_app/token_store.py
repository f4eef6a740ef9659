"""Hash-only storage for opaque exam-app tokens.

Plaintext tokens leave this module exactly once, from ``issue()``. Rows carry
the peppered SHA256 hash, and lookups hash the presented token and match on
the unique hash index. Liveness (unexpired, not closed) is always part of the
lookup query, so correctness never depends on the expiry sweep having run.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from app.common.clock import utcnow
from app.core.security import generate_opaque_token, hash_token
from app.models.exam_app import ExamAppAuthorization, ExamAppLaunchSession


class TokenStore:
    """Token lookups and state transitions for one credential table.

    ``closed_columns`` are nullable timestamps; a row is live while all of
    them are null and ``expires_at`` is in the future.
    """

    def __init__(self, model: Any, closed_columns: tuple[str, ...]):
        self.model = model
        self.closed_columns = closed_columns

    def issue(self) -> tuple[str, str]:
        """Generate a fresh token. Returns ``(plaintext, hash)``."""
        token = generate_opaque_token()
        return token, self.store(token)

    @staticmethod
    def store(token: str) -> str:
        """Hash to persist for ``token``."""
        return hash_token(token)

    def live_criteria(self, now: datetime) -> list[ColumnElement[bool]]:
        criteria: list[ColumnElement[bool]] = [self.model.expires_at > now]
        criteria.extend(getattr(self.model, column).is_(None) for column in self.closed_columns)
        return criteria

    def lookup(
        self,
        db: Session,
        token: str,
        *criteria: ColumnElement[bool],
        now: datetime | None = None,
    ) -> Any | None:
        """Find the live row for ``token`` (None when unknown, expired or closed)."""
        if not token:
            return None
        now = now or utcnow()
        stmt = select(self.model).where(
            self.model.token_hash == self.store(token),
            *self.live_criteria(now),
            *criteria,
        )
        return db.execute(stmt).scalar_one_or_none()

    def invalidate(
        self,
        db: Session,
        record: Any,
        *,
        column: str = "revoked_at",
        now: datetime | None = None,
    ) -> bool:
        """Close ``record`` if it is still live.

        Single conditional UPDATE: of two concurrent callers exactly one gets
        True. Does not commit.
        """
        now = now or utcnow()
        result = db.execute(
            update(self.model)
            .where(self.model.id == record.id, *self.live_criteria(now))
            .values({column: now})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        setattr(record, column, now)
        return True

    def invalidate_where(
        self,
        db: Session,
        *criteria: ColumnElement[bool],
        column: str = "revoked_at",
        now: datetime | None = None,
    ) -> int:
        """Close every live row matching ``criteria``. Does not commit."""
        now = now or utcnow()
        result = db.execute(
            update(self.model)
            .where(*self.live_criteria(now), *criteria)
            .values({column: now})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def sweep_expired(self, db: Session, *, now: datetime | None = None) -> int:
        """Delete rows whose expiry has passed. Does not commit."""
        now = now or utcnow()
        result = db.execute(
            delete(self.model)
            .where(self.model.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


authorization_tokens = TokenStore(ExamAppAuthorization, closed_columns=("used_at", "revoked_at"))
launch_tokens = TokenStore(ExamAppLaunchSession, closed_columns=("revoked_at",))
