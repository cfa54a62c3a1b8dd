"""
assessment_engine/services/session_engine.py
Session State Machine

Orchestrates one learner's attempt: start, answer, review flags, time
accounting, submit, and the read models built on top of them.

STATES:
    IN_PROGRESS -> COMPLETED (terminal; no pause, no cancel)

MUTATION GUARDS (checked in this order on every write):
1. Session exists                       -> NotFoundError
2. Caller owns the session              -> ForbiddenError (rendered as 404)
3. Session is IN_PROGRESS               -> InvalidStateError
4. Deadline has not passed              -> finalize(TIMEOUT), DeadlineExceededError
5. Question belongs to the snapshot     -> NotFoundError

Every accepted mutation bumps the session version through a conditional
UPDATE that also requires status = IN_PROGRESS, in the same transaction as
the ledger write. A write racing a finalize either lands first (and the
finalize retries) or is rejected.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.clock import utcnow
from assessment_engine.config import settings
from assessment_engine.errors import (
    ConcurrencyConflictError,
    DeadlineExceededError,
    ErrorCode,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from assessment_engine.orm.answer_record import AnswerRecord
from assessment_engine.orm.assessment_result import AssessmentResult
from assessment_engine.orm.assessment_session import AssessmentSession, SessionStatus, FinalizationReason
from assessment_engine.services import timer_authority
from assessment_engine.services.answer_ledger import AnswerLedger
from assessment_engine.services.finalizer import finalize_session, load_session, load_result
from assessment_engine.services.palette import build_palette, summarize_palette, palette_status
from assessment_engine.services.question_source import QuestionSource, question_source
from assessment_engine.services.scoring import get_scoring_policy

logger = logging.getLogger(__name__)

SESSION_RESOURCE = "Assessment session"


# =============================================================================
# Lifecycle
# =============================================================================

async def start_session(
    db: AsyncSession,
    owner_id: str,
    paper_id: int,
    source: Optional[QuestionSource] = None,
    now: Optional[datetime] = None
) -> AssessmentSession:
    """
    Start a new attempt at a paper.

    Lifecycle:
    1. Resolve the paper through the question source (ConfigurationError if unusable)
    2. Snapshot question ids, time limit, scoring policy and its marks
    3. Create one empty answer record per question
    """
    source = source or question_source
    snapshot = await source.load_paper(db, paper_id)

    policy_name = snapshot.scoring_policy or settings.DEFAULT_SCORING_POLICY
    policy = get_scoring_policy(policy_name)

    session = AssessmentSession(
        owner_id=owner_id,
        paper_id=snapshot.paper_id,
        question_ids=list(snapshot.question_ids),
        status=SessionStatus.IN_PROGRESS,
        started_at=now or utcnow(),
        time_limit_seconds=snapshot.time_limit_seconds,
        completed_at=None,
        version=0,
        scoring_policy=policy_name,
        scoring_params=policy.params(),
    )
    db.add(session)
    await db.flush()

    AnswerLedger.create_for_session(db, session.id, snapshot.question_ids)

    await db.commit()
    await db.refresh(session)

    logger.info(
        f"Started assessment session {session.id} for owner {owner_id} "
        f"(paper={paper_id}, questions={session.total_questions}, limit={session.time_limit_seconds}s)"
    )
    return session


async def submit(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    reason: FinalizationReason = FinalizationReason.USER_SUBMIT,
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None
) -> AssessmentResult:
    """
    Finalize the caller's session. Idempotent.

    The recorded reason is decided by the server clock: a session past its
    deadline is always finalized as TIMEOUT, and a client-claimed TIMEOUT
    before the deadline is recorded as USER_SUBMIT.
    """
    if reason == FinalizationReason.ADMIN_FORCE:
        raise InvalidInputError(
            "ADMIN_FORCE is reserved for operators",
            details={"allowed": [FinalizationReason.USER_SUBMIT.value, FinalizationReason.TIMEOUT.value]}
        )

    now = now or utcnow()
    session = await _load_owned_session(db, session_id, owner_id)

    if session.status == SessionStatus.IN_PROGRESS:
        reason = FinalizationReason.TIMEOUT if timer_authority.is_expired(session, now) else FinalizationReason.USER_SUBMIT

    return await finalize_session(db, session_id, reason, now=now, source=source)


async def force_finalize(
    db: AsyncSession,
    session_id: int,
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None
) -> AssessmentResult:
    """Operator finalize with ADMIN_FORCE; no ownership check."""
    logger.warning(f"Force-finalizing assessment session {session_id}")
    return await finalize_session(db, session_id, FinalizationReason.ADMIN_FORCE, now=now, source=source)


# =============================================================================
# Mutations
# =============================================================================

async def record_answer(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    question_id: str,
    selected_option_id: Optional[str],
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None
) -> Dict[str, Any]:
    """Overwrite the selected option for a question. None clears the answer."""
    source = source or question_source
    now = now or utcnow()
    session, record = await _guard_mutation(db, session_id, owner_id, question_id, now)

    if selected_option_id is not None:
        payloads = await source.get_question_payloads(db, [question_id])
        payload = payloads.get(question_id)
        if payload is None:
            raise InvalidInputError(
                f"Question '{question_id}' is no longer available in the question bank",
                details={"question_id": question_id, "selected_option_id": selected_option_id}
            )
        option_ids = [option["id"] for option in payload.get("options", [])]
        if selected_option_id not in option_ids:
            raise InvalidInputError(
                f"Option '{selected_option_id}' does not belong to question '{question_id}'",
                details={"question_id": question_id, "selected_option_id": selected_option_id}
            )

    if record.selected_option_id == selected_option_id:
        return _mutation_response(session, record)

    await _claim_mutation(db, session, now)
    record = await AnswerLedger.get(db, session_id, question_id)
    AnswerLedger.upsert(record, selected_option_id=selected_option_id, answered_at=now)
    await db.commit()

    session = await load_session(db, session_id)
    logger.debug(f"Session {session_id}: answer recorded for {question_id} (version {session.version})")
    return _mutation_response(session, record)


async def toggle_review(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    question_id: str,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Flip the marked-for-review flag on a question."""
    now = now or utcnow()
    session, record = await _guard_mutation(db, session_id, owner_id, question_id, now)

    await _claim_mutation(db, session, now)
    record = await AnswerLedger.get(db, session_id, question_id)
    AnswerLedger.upsert(record, is_marked_for_review=not record.is_marked_for_review)
    await db.commit()

    session = await load_session(db, session_id)
    return _mutation_response(session, record)


async def account_time(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    question_id: str,
    delta_seconds: int,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Attribute elapsed time to a question.

    The applied delta is clamped to the per-call ceiling, the remaining time
    budget of a timed session, and the wall-clock time not yet attributed to
    any question, so the sum over all records never exceeds now - started_at.
    A delta clamped to zero changes nothing.
    """
    if delta_seconds is None or delta_seconds < 0:
        raise InvalidInputError(
            "delta_seconds must be a non-negative integer",
            details={"delta_seconds": delta_seconds}
        )

    now = now or utcnow()
    session, record = await _guard_mutation(db, session_id, owner_id, question_id, now)

    if delta_seconds == 0:
        return _mutation_response(session, record, applied_delta_seconds=0)

    await _claim_mutation(db, session, now)

    # Totals are read after the claim so concurrent accounting cannot overshoot
    attributed = await AnswerLedger.total_time_spent(db, session_id)
    unattributed = max(0, timer_authority.elapsed_seconds(session, now) - attributed)

    applied = min(delta_seconds, settings.MAX_TIME_DELTA_SECONDS, unattributed)
    remaining = timer_authority.remaining_seconds(session, now)
    if remaining is not None:
        applied = min(applied, remaining)
    applied = max(0, applied)

    if applied == 0:
        await db.rollback()
        session = await load_session(db, session_id)
        record = await AnswerLedger.get(db, session_id, question_id)
        return _mutation_response(session, record, applied_delta_seconds=0)

    record = await AnswerLedger.get(db, session_id, question_id)
    AnswerLedger.upsert(record, add_time_seconds=applied)
    await db.commit()

    if applied < delta_seconds:
        logger.info(f"Session {session_id}: time delta for {question_id} clamped from {delta_seconds}s to {applied}s")

    session = await load_session(db, session_id)
    return _mutation_response(session, record, applied_delta_seconds=applied)


# =============================================================================
# Reads
# =============================================================================

async def get_session_view(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Session state for the exam page.

    Used for:
    - Initial load after starting
    - Recovery after a page refresh
    - Timer re-sync (server time, deadline, remaining seconds)
    """
    now = now or utcnow()
    session = await _load_owned_session(db, session_id, owner_id)
    session = await _settle_if_expired(db, session, now)

    records = await AnswerLedger.list_by_session(db, session_id)
    palette = build_palette(records)

    return {
        **session.to_summary(),
        "scoring_policy": session.scoring_policy,
        "scoring_params": session.scoring_params or {},
        "timer": timer_authority.timer_state(session, now),
        "palette": palette,
        "progress": summarize_palette(palette),
        "answers": [record.to_dict(include_outcome=session.is_completed) for record in records],
    }


async def get_session_questions(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    source: Optional[QuestionSource] = None
) -> Dict[str, Any]:
    """
    Learner-facing question payloads in snapshot order.

    Questions removed from the bank after the session started still occupy
    their slot, flagged as unavailable.
    """
    source = source or question_source
    session = await _load_owned_session(db, session_id, owner_id)
    payloads = await source.get_question_payloads(db, session.question_ids)

    questions = []
    for position, question_id in enumerate(session.question_ids, start=1):
        payload = payloads.get(question_id)
        if payload is None:
            payload = {"id": question_id, "available": False}
        questions.append({**payload, "position": position})

    return {
        "session_id": session.id,
        "question_ids": list(session.question_ids),
        "questions": questions,
    }


async def get_session_result(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    now: Optional[datetime] = None
) -> AssessmentResult:
    """Frozen result of a completed session; NotFound while in progress."""
    session = await _load_owned_session(db, session_id, owner_id)
    session = await _settle_if_expired(db, session, now or utcnow())

    result = await load_result(db, session_id) if session.is_completed else None
    if result is None:
        raise NotFoundError("Assessment result", session_id, code=ErrorCode.RESULT_NOT_FOUND)
    return result


async def get_review_sheet(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    now: Optional[datetime] = None,
    source: Optional[QuestionSource] = None
) -> Dict[str, Any]:
    """Per-question selected vs. correct option with explanations, after completion only."""
    source = source or question_source
    session = await _load_owned_session(db, session_id, owner_id)
    session = await _settle_if_expired(db, session, now or utcnow())

    if not session.is_completed:
        raise InvalidStateError(
            "Review is available once the session is completed",
            code=ErrorCode.NOT_COMPLETED,
            details={"session_id": session_id}
        )

    result = await load_result(db, session_id)
    if result is None:
        raise NotFoundError("Assessment result", session_id, code=ErrorCode.RESULT_NOT_FOUND)

    payloads = await source.get_review_payloads(db, session.question_ids)

    items = []
    for outcome in result.per_question_outcome:
        payload = payloads.get(outcome["question_id"], {})
        items.append({
            **outcome,
            "stem": payload.get("stem"),
            "options": payload.get("options", []),
            "explanation": payload.get("explanation"),
        })

    return {
        "session_id": session_id,
        "result": result.to_dict(),
        "questions": items,
    }


async def list_sessions(
    db: AsyncSession,
    owner_id: str,
    limit: int = 20
) -> List[Dict[str, Any]]:
    """Caller's sessions, most recent first, with score for completed ones."""
    limit = max(1, min(limit, settings.HISTORY_MAX_LIMIT))

    result = await db.execute(
        select(AssessmentSession)
        .where(AssessmentSession.owner_id == owner_id)
        .order_by(AssessmentSession.started_at.desc(), AssessmentSession.id.desc())
        .limit(limit)
    )
    sessions = result.scalars().all()
    if not sessions:
        return []

    results_by_session = {}
    completed_ids = [s.id for s in sessions if s.is_completed]
    if completed_ids:
        rows = await db.execute(
            select(AssessmentResult).where(AssessmentResult.session_id.in_(completed_ids))
        )
        results_by_session = {r.session_id: r for r in rows.scalars().all()}

    history = []
    for session in sessions:
        entry = session.to_summary()
        stored = results_by_session.get(session.id)
        entry["score_percent"] = stored.score_percent if stored else None
        entry["finalization_reason"] = stored.finalization_reason.value if stored else None
        history.append(entry)

    return history


# =============================================================================
# Guards
# =============================================================================

async def _load_owned_session(db: AsyncSession, session_id: int, owner_id: str) -> AssessmentSession:
    session = await load_session(db, session_id)
    if not session:
        raise NotFoundError(SESSION_RESOURCE, session_id, code=ErrorCode.SESSION_NOT_FOUND)
    if session.owner_id != owner_id:
        logger.warning(f"Owner mismatch on session {session_id}: caller {owner_id}")
        raise ForbiddenError(SESSION_RESOURCE, session_id, owner_id)
    return session


async def _guard_mutation(
    db: AsyncSession,
    session_id: int,
    owner_id: str,
    question_id: str,
    now: datetime
) -> Tuple[AssessmentSession, AnswerRecord]:
    session = await _load_owned_session(db, session_id, owner_id)

    if session.status != SessionStatus.IN_PROGRESS:
        raise InvalidStateError(
            "Session is already completed",
            code=ErrorCode.ALREADY_COMPLETED,
            details={"session_id": session_id, "status": session.status.value}
        )

    if timer_authority.is_expired(session, now):
        session_deadline = timer_authority.deadline(session)
        await _finalize_on_timeout(db, session_id, now)
        raise DeadlineExceededError(session_id, session_deadline.isoformat())

    if question_id not in session.question_ids:
        raise NotFoundError("Question", question_id, code=ErrorCode.QUESTION_NOT_FOUND)

    record = await AnswerLedger.get(db, session_id, question_id)
    if record is None:
        raise NotFoundError("Question", question_id, code=ErrorCode.QUESTION_NOT_FOUND)

    return session, record


async def _claim_mutation(db: AsyncSession, session: AssessmentSession, now: datetime) -> None:
    """Conditional version bump; fails if a finalize got there first."""
    claimed = await db.execute(
        update(AssessmentSession)
        .where(
            AssessmentSession.id == session.id,
            AssessmentSession.status == SessionStatus.IN_PROGRESS
        )
        .values(version=AssessmentSession.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    if claimed.rowcount != 1:
        session_id = session.id
        await db.rollback()
        raise InvalidStateError(
            "Session is already completed",
            code=ErrorCode.ALREADY_COMPLETED,
            details={"session_id": session_id}
        )


async def _finalize_on_timeout(db: AsyncSession, session_id: int, now: datetime) -> None:
    try:
        await finalize_session(db, session_id, FinalizationReason.TIMEOUT, now=now)
    except ConcurrencyConflictError:
        # The sweep or the next call will finish it; the caller still gets 410
        logger.warning(f"Timeout finalize for session {session_id} lost every attempt")
    logger.info(f"Deadline exceeded on session {session_id}; finalized with TIMEOUT")


async def _settle_if_expired(db: AsyncSession, session: AssessmentSession, now: datetime) -> AssessmentSession:
    """Finalize an expired in-progress session before reading it."""
    if session.status == SessionStatus.IN_PROGRESS and timer_authority.is_expired(session, now):
        session_id = session.id
        await _finalize_on_timeout(db, session_id, now)
        session = await load_session(db, session_id)
    return session


def _mutation_response(
    session: AssessmentSession,
    record: AnswerRecord,
    applied_delta_seconds: Optional[int] = None
) -> Dict[str, Any]:
    response = {
        "session_id": session.id,
        "version": session.version,
        "answer": record.to_dict(),
        "palette_status": palette_status(record.selected_option_id, bool(record.is_marked_for_review)).value,
    }
    if applied_delta_seconds is not None:
        response["applied_delta_seconds"] = applied_delta_seconds
    return response
