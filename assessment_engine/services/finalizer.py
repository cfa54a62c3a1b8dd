"""
assessment_engine/services/finalizer.py
Finalizer / Scorer

Turns an in-progress session into a frozen, scored result exactly once.

FINALIZATION PROTOCOL:
1. Conditional UPDATE: status IN_PROGRESS -> COMPLETED where version matches
2. Loser of the compare-and-set never recomputes; it reads back the
   persisted result (or retries if the version moved because of a
   concurrent answer)
3. Winner writes is_correct on every record, persists the result and
   completed_at in the same transaction
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.clock import utcnow
from assessment_engine.config import settings
from assessment_engine.errors import ConcurrencyConflictError, NotFoundError, ErrorCode
from assessment_engine.orm.assessment_result import AssessmentResult
from assessment_engine.orm.assessment_session import AssessmentSession, SessionStatus, FinalizationReason
from assessment_engine.services.answer_ledger import AnswerLedger
from assessment_engine.services.question_source import QuestionSource, question_source
from assessment_engine.services.scoring import get_scoring_policy, score_answers, outcome_snapshot

logger = logging.getLogger(__name__)


async def load_session(db: AsyncSession, session_id: int) -> Optional[AssessmentSession]:
    """Fresh read of a session row, overwriting any stale identity-map copy."""
    result = await db.execute(
        select(AssessmentSession)
        .where(AssessmentSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_result(db: AsyncSession, session_id: int) -> Optional[AssessmentResult]:
    result = await db.execute(
        select(AssessmentResult)
        .where(AssessmentResult.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _time_taken(session: AssessmentSession, now: datetime) -> int:
    elapsed = max(0, int((now - session.started_at).total_seconds()))
    if session.time_limit_seconds is not None:
        return min(elapsed, session.time_limit_seconds)
    return elapsed


async def finalize_session(
    db: AsyncSession,
    session_id: int,
    reason: FinalizationReason,
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None,
    max_attempts: Optional[int] = None
) -> AssessmentResult:
    """
    Finalize a session and return its result.

    Idempotent: a completed session returns its stored result unchanged.
    """
    result, _ = await finalize_session_with_outcome(
        db, session_id, reason, now=now, source=source, max_attempts=max_attempts
    )
    return result


async def finalize_session_with_outcome(
    db: AsyncSession,
    session_id: int,
    reason: FinalizationReason,
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None,
    max_attempts: Optional[int] = None
) -> Tuple[AssessmentResult, bool]:
    """
    Same as finalize_session, also reporting whether this call created the
    result (True) or found one stored by an earlier finalize (False).

    Raises:
        NotFoundError: unknown session
        ConcurrencyConflictError: the compare-and-set lost to concurrent
            mutations on every attempt
    """
    source = source or question_source
    max_attempts = max_attempts or settings.FINALIZE_MAX_ATTEMPTS
    expected_version = None

    for attempt in range(1, max_attempts + 1):
        session = await load_session(db, session_id)
        if not session:
            raise NotFoundError("Assessment session", session_id, code=ErrorCode.SESSION_NOT_FOUND)

        if session.status == SessionStatus.COMPLETED:
            existing = await load_result(db, session_id)
            if existing:
                return existing, False
            # Completed row without a visible result only happens mid-commit elsewhere
            logger.warning(f"Session {session_id} completed but result not visible yet (attempt {attempt})")
            await db.rollback()
            continue

        finalized_at = now or utcnow()
        expected_version = session.version

        claimed = await db.execute(
            update(AssessmentSession)
            .where(
                AssessmentSession.id == session_id,
                AssessmentSession.status == SessionStatus.IN_PROGRESS,
                AssessmentSession.version == expected_version
            )
            .values(
                status=SessionStatus.COMPLETED,
                completed_at=finalized_at,
                version=expected_version + 1,
                updated_at=finalized_at
            )
            .execution_options(synchronize_session=False)
        )

        if claimed.rowcount != 1:
            # Someone else finalized, or an answer bumped the version first
            await db.rollback()
            logger.info(
                f"Finalize compare-and-set lost for session {session_id} "
                f"(expected version {expected_version}, attempt {attempt}/{max_attempts})"
            )
            continue

        records = await AnswerLedger.list_by_session(db, session_id)
        answer_keys = await source.get_answer_keys(db, session.question_ids)
        policy = get_scoring_policy(session.scoring_policy, session.scoring_params)
        sheet = score_answers(records, answer_keys, policy)

        outcomes_by_question = {o.question_id: o for o in sheet.outcomes}
        for record in records:
            AnswerLedger.upsert(record, is_correct=outcomes_by_question[record.question_id].is_correct)

        result = AssessmentResult(
            session_id=session_id,
            total_questions=sheet.total_questions,
            attempted_count=sheet.attempted_count,
            correct_count=sheet.correct_count,
            score_percent=sheet.score_percent,
            marks_obtained=sheet.marks_obtained,
            max_marks=sheet.max_marks,
            scoring_policy=sheet.policy,
            per_question_outcome=outcome_snapshot(sheet),
            time_taken_seconds=_time_taken(session, finalized_at),
            finalization_reason=reason,
            finalized_at=finalized_at,
        )
        result.result_hash = result.compute_hash()
        db.add(result)

        await db.commit()
        await db.refresh(session)

        logger.info(
            f"Session {session_id} finalized ({reason.value}): "
            f"{sheet.correct_count}/{sheet.total_questions} correct, {sheet.score_percent}%"
        )
        return result, True

    raise ConcurrencyConflictError(session_id, expected_version)


async def verify_result_integrity(db: AsyncSession, session_id: int) -> dict:
    """Recompute a stored result's hash and compare it with the persisted one."""
    result = await load_result(db, session_id)
    if not result:
        raise NotFoundError("Assessment result", session_id, code=ErrorCode.RESULT_NOT_FOUND)

    return {
        "session_id": session_id,
        "stored_hash": result.result_hash,
        "computed_hash": result.compute_hash(),
        "valid": result.verify_hash(),
    }
