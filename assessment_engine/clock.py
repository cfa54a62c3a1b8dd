"""
assessment_engine/clock.py
Server clock used for every deadline and timestamp decision.

Timestamps are naive UTC, matching how they are stored in the database.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current server time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
