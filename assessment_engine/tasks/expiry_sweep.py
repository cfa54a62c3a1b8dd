"""
assessment_engine/tasks/expiry_sweep.py
Deadline sweep: finalizes expired in-progress sessions with TIMEOUT.

Learners who close the tab never call the API again, so the deadline is
also enforced here, on a fixed interval, independent of any client.
Running the sweep in several workers at once is safe: the finalizer's
compare-and-set lets exactly one of them win.
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_engine.clock import utcnow
from assessment_engine.config import settings
from assessment_engine.database import AsyncSessionLocal
from assessment_engine.errors import APIError
from assessment_engine.orm.assessment_session import AssessmentSession, SessionStatus, FinalizationReason
from assessment_engine.services import timer_authority
from assessment_engine.services.finalizer import finalize_session_with_outcome
from assessment_engine.services.question_source import QuestionSource

logger = logging.getLogger(__name__)


async def find_expired_session_ids(db: AsyncSession, now: Optional[datetime] = None) -> List[int]:
    """Ids of timed IN_PROGRESS sessions whose deadline has passed. Untimed sessions never match."""
    now = now or utcnow()
    result = await db.execute(
        select(AssessmentSession)
        .where(
            AssessmentSession.status == SessionStatus.IN_PROGRESS,
            AssessmentSession.time_limit_seconds.isnot(None)
        )
        .order_by(AssessmentSession.started_at)
    )
    return [s.id for s in result.scalars().all() if timer_authority.is_expired(s, now)]


async def sweep_expired_sessions(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None
) -> int:
    """
    Run a single sweep cycle.

    Each session is finalized in its own database session so one failure
    does not hold back the rest. Returns the number finalized by this
    sweep; sessions a learner call timed out in the meantime are not counted.
    """
    now = now or utcnow()

    async with session_factory() as db:
        expired_ids = await find_expired_session_ids(db, now)

    if not expired_ids:
        return 0

    finalized = 0
    for session_id in expired_ids:
        async with session_factory() as db:
            try:
                _, created = await finalize_session_with_outcome(
                    db, session_id, FinalizationReason.TIMEOUT, now=now, source=source
                )
                if created:
                    finalized += 1
            except APIError as e:
                logger.warning(f"Sweep could not finalize session {session_id}: {e.code} {e.message}")
            except Exception as e:
                logger.error(f"Sweep failed on session {session_id}: {str(e)}")

    logger.info(f"Expiry sweep completed: {finalized} of {len(expired_ids)} expired sessions finalized")
    return finalized


async def expiry_sweep_loop(
    interval_seconds: Optional[int] = None,
    session_factory: async_sessionmaker = AsyncSessionLocal
):
    """
    Background sweep loop.
    Runs every interval_seconds (default EXPIRY_SWEEP_INTERVAL_SECONDS).
    """
    interval_seconds = interval_seconds or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
    logger.info(f"Starting expiry sweep loop with interval {interval_seconds}s")

    while True:
        try:
            await sweep_expired_sessions(session_factory)
        except Exception as e:
            logger.error(f"Expiry sweep loop error: {str(e)}")

        await asyncio.sleep(interval_seconds)


def start_expiry_sweep_task(
    interval_seconds: Optional[int] = None,
    session_factory: async_sessionmaker = AsyncSessionLocal
) -> asyncio.Task:
    """Start the sweep as a background task on the running loop."""
    return asyncio.create_task(expiry_sweep_loop(interval_seconds, session_factory))
