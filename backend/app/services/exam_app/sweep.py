"""Periodic deletion of expired exam-app credentials.

Lookups already exclude expired rows; the sweep only keeps the tables small.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from app.common.clock import utcnow
from app.core.logging import get_logger
from app.services.exam_app.abuse_protection import sweep_stale_gate_failures
from app.services.exam_app.token_store import authorization_tokens, launch_tokens

logger = get_logger(__name__)


@dataclass(frozen=True)
class SweepResult:
    authorizations: int
    launch_sessions: int
    gate_failures: int = 0


def sweep_expired_tokens(db: Session, *, now: datetime | None = None) -> SweepResult:
    """Delete expired authorization and launch-session rows and stale gate counters."""
    now = now or utcnow()
    result = SweepResult(
        authorizations=authorization_tokens.sweep_expired(db, now=now),
        launch_sessions=launch_tokens.sweep_expired(db, now=now),
        gate_failures=sweep_stale_gate_failures(db, now=now),
    )
    db.commit()
    logger.info(
        "Expired exam app tokens swept",
        extra={
            "authorizations": result.authorizations,
            "launch_sessions": result.launch_sessions,
            "gate_failures": result.gate_failures,
        },
    )
    return result
