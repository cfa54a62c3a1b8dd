"""
assessment_engine/services/timer_authority.py
Server-side deadline authority.

TIMER RULES:
1. Deadline = started_at + time_limit_seconds (no deadline when untimed)
2. Expired  = timed AND now >= deadline + grace
3. Only the server clock is consulted; client countdowns are display-only
"""

from datetime import datetime, timedelta
from typing import Optional

from assessment_engine.clock import utcnow
from assessment_engine.config import settings


def deadline(session) -> Optional[datetime]:
    """Absolute deadline of a session, or None when untimed."""
    if session.time_limit_seconds is None:
        return None
    return session.started_at + timedelta(seconds=session.time_limit_seconds)


def is_expired(session, now: Optional[datetime] = None, grace_seconds: Optional[int] = None) -> bool:
    """True once a timed session has reached its deadline (plus grace)."""
    session_deadline = deadline(session)
    if session_deadline is None:
        return False

    now = now or utcnow()
    if grace_seconds is None:
        grace_seconds = settings.DEADLINE_GRACE_SECONDS

    return now >= session_deadline + timedelta(seconds=grace_seconds)


def elapsed_seconds(session, now: Optional[datetime] = None) -> int:
    """Whole seconds since the session started, never negative."""
    now = now or utcnow()
    return max(0, int((now - session.started_at).total_seconds()))


def remaining_seconds(session, now: Optional[datetime] = None) -> Optional[int]:
    """Seconds left before the deadline; None for untimed sessions."""
    if session.time_limit_seconds is None:
        return None
    if session.completed_at is not None:
        return 0

    now = now or utcnow()
    remaining = (deadline(session) - now).total_seconds()
    return max(0, int(remaining))


def timer_state(session, now: Optional[datetime] = None) -> dict:
    """Timer block returned to clients for display and re-sync."""
    now = now or utcnow()
    session_deadline = deadline(session)
    return {
        "server_time": now.isoformat(),
        "started_at": session.started_at.isoformat(),
        "time_limit_seconds": session.time_limit_seconds,
        "deadline": session_deadline.isoformat() if session_deadline else None,
        "remaining_seconds": remaining_seconds(session, now),
        "elapsed_seconds": elapsed_seconds(session, now),
        "is_expired": is_expired(session, now),
    }
