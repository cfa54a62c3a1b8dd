"""
assessment_engine/routes/sessions.py
Session Gateway: HTTP/JSON interface to the assessment engine

Endpoints:
- Start a session from a paper
- Read state (timer, palette, progress) and questions
- Record answers, toggle review flags, report time spent
- Submit and read the frozen result / review sheet

Typed engine errors propagate to the global APIError handler. Reads and
submit are retried on transient storage errors; answer and time writes
never are.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.config import settings
from assessment_engine.database import get_db, with_retry
from assessment_engine.errors import APIError, ErrorCode
from assessment_engine.orm.assessment_session import FinalizationReason
from assessment_engine.rate_limit import limiter
from assessment_engine.schemas.assessment import (
    StartSessionRequest,
    RecordAnswerRequest,
    ToggleReviewRequest,
    AccountTimeRequest,
    SubmitRequest,
)
from assessment_engine.security.principal import Principal, get_current_principal
from assessment_engine.services import session_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _internal_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "success": False,
            "error": "Internal Error",
            "message": message,
            "code": ErrorCode.INTERNAL_ERROR
        }
    )


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(lambda: settings.SESSION_START_RATE_LIMIT)
async def start_session(
    request: Request,
    payload: StartSessionRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """
    Start a new timed attempt at a paper.

    - Snapshots the paper's question ids, time limit and scoring policy
    - Creates an empty answer record per question
    """
    try:
        session = await session_engine.start_session(db, principal.owner_id, payload.paper_id)
        return session.to_summary()
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to start session: {e}")
        raise _internal_error("Failed to start assessment session")


@router.get("")
async def list_sessions(
    limit: int = Query(20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Caller's session history, most recent first."""
    try:
        sessions = await with_retry(
            lambda: session_engine.list_sessions(db, principal.owner_id, limit),
            db=db
        )
        return {"sessions": sessions, "count": len(sessions)}
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to list sessions: {e}")
        raise _internal_error("Failed to list assessment sessions")


@router.get("/{session_id}")
async def get_session(
    session_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """
    Current session state.

    Used for:
    - Recovery after page refresh
    - Syncing the countdown with the server clock
    - Rendering the question palette

    Finalizes with TIMEOUT first if the deadline has passed.
    """
    try:
        return await with_retry(
            lambda: session_engine.get_session_view(db, session_id, principal.owner_id),
            db=db
        )
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get session {session_id}: {e}")
        raise _internal_error("Failed to get session state")


@router.get("/{session_id}/questions")
async def get_session_questions(
    session_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Question payloads in snapshot order. Never includes answer keys."""
    try:
        return await with_retry(
            lambda: session_engine.get_session_questions(db, session_id, principal.owner_id),
            db=db
        )
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get questions for session {session_id}: {e}")
        raise _internal_error("Failed to get session questions")


@router.post("/{session_id}/answers")
async def record_answer(
    session_id: int,
    payload: RecordAnswerRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """
    Select or clear an option.

    - 409 once the session is completed
    - 410 when the deadline has passed (the session is finalized first)
    """
    try:
        return await session_engine.record_answer(
            db,
            session_id,
            principal.owner_id,
            payload.question_id,
            payload.selected_option_id
        )
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to record answer on session {session_id}: {e}")
        raise _internal_error("Failed to record answer")


@router.post("/{session_id}/review")
async def toggle_review(
    session_id: int,
    payload: ToggleReviewRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Flip the marked-for-review flag on a question."""
    try:
        return await session_engine.toggle_review(db, session_id, principal.owner_id, payload.question_id)
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to toggle review on session {session_id}: {e}")
        raise _internal_error("Failed to toggle review flag")


@router.post("/{session_id}/time")
async def account_time(
    session_id: int,
    payload: AccountTimeRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Attribute time spent to a question. The applied delta may be clamped."""
    try:
        return await session_engine.account_time(
            db,
            session_id,
            principal.owner_id,
            payload.question_id,
            payload.delta_seconds
        )
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to account time on session {session_id}: {e}")
        raise _internal_error("Failed to record time spent")


@router.post("/{session_id}/submit")
async def submit_session(
    session_id: int,
    payload: Optional[SubmitRequest] = None,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """
    Finalize the session and return the result.

    Idempotent: submitting a completed session returns the same result.
    """
    reason = FinalizationReason((payload or SubmitRequest()).reason)
    try:
        result = await with_retry(
            lambda: session_engine.submit(db, session_id, principal.owner_id, reason),
            db=db
        )
        return result.to_dict()
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to submit session {session_id}: {e}")
        raise _internal_error("Failed to submit assessment session")


@router.get("/{session_id}/result")
async def get_result(
    session_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Frozen result; 404 until the session is completed."""
    try:
        result = await with_retry(
            lambda: session_engine.get_session_result(db, session_id, principal.owner_id),
            db=db
        )
        return result.to_dict()
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get result for session {session_id}: {e}")
        raise _internal_error("Failed to get assessment result")


@router.get("/{session_id}/review-sheet")
async def get_review_sheet(
    session_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db)
):
    """Selected vs. correct option with explanations; 409 while in progress."""
    try:
        return await with_retry(
            lambda: session_engine.get_review_sheet(db, session_id, principal.owner_id),
            db=db
        )
    except (APIError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Failed to get review sheet for session {session_id}: {e}")
        raise _internal_error("Failed to get review sheet")
