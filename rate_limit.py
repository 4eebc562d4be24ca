"""Sliding-window rate limiting backed by the database.

Each (actor, operation) pair owns one ``RateLimitWindow`` row. A check is a
single conditional ``UPDATE ... RETURNING`` that either starts a new window
or bumps the counter, so concurrent callers never lose an increment.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from errors import StorageUnavailable
from models import RateLimitWindow, utcnow

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _ensure_window(session: Session, actor_id: str, operation: str, now: datetime) -> None:
    dialect = session.get_bind().dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Rate limiting is not supported on {dialect}")

    stmt = (
        insert(RateLimitWindow)
        .values(actor_id=actor_id, operation=operation, window_start=now, request_count=0)
        .on_conflict_do_nothing(index_elements=["actor_id", "operation"])
    )
    session.execute(stmt)


def _consume(
    session: Session, actor_id: str, operation: str, window: timedelta, now: datetime
) -> int:
    expired = RateLimitWindow.window_start < now - window
    stmt = (
        update(RateLimitWindow)
        .where(
            RateLimitWindow.actor_id == actor_id,
            RateLimitWindow.operation == operation,
        )
        .values(
            request_count=case((expired, 1), else_=RateLimitWindow.request_count + 1),
            window_start=case((expired, now), else_=RateLimitWindow.window_start),
        )
        .returning(RateLimitWindow.request_count)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).scalar_one()


def check_and_consume(
    session: Session,
    actor_id: str,
    operation: str,
    max_requests: int,
    window: timedelta,
    now: Optional[datetime] = None,
) -> bool:
    """
    Count one invocation of ``operation`` by ``actor_id`` and report whether
    it fits in the current window.

    Raises StorageUnavailable when the window cannot be read or updated; the
    caller must treat that as not allowed.
    """
    now = now or utcnow()
    try:
        _ensure_window(session, actor_id, operation, now)
        count = _consume(session, actor_id, operation, window, now)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Rate limit check failed for %s on %s", actor_id, operation)
        raise StorageUnavailable("Rate limit check failed, please retry")

    allowed = count <= max_requests
    if not allowed:
        logger.warning(
            "Rate limit exceeded for %s on %s (%d/%d)", actor_id, operation, count, max_requests
        )
    return allowed
