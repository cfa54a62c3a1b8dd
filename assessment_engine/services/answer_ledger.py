"""
assessment_engine/services/answer_ledger.py
Answer Ledger

Storage access for AnswerRecord rows keyed by (session_id, question_id).
No business rules live here: the session engine enforces every guard
before delegating. Nothing in this module commits; the caller owns the
transaction.
"""

import logging
from typing import List, Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.orm.answer_record import AnswerRecord

logger = logging.getLogger(__name__)

_UNSET = object()


class AnswerLedger:
    """Get / Upsert / ListBySession over answer records."""

    @staticmethod
    def create_for_session(
        db: AsyncSession,
        session_id: int,
        question_ids: Sequence[str]
    ) -> List[AnswerRecord]:
        """Add one empty record per question id, in order."""
        records = []
        for position, question_id in enumerate(question_ids, start=1):
            record = AnswerRecord(
                session_id=session_id,
                question_id=question_id,
                position=position,
                selected_option_id=None,
                is_marked_for_review=False,
                cumulative_time_spent_seconds=0,
                is_correct=None,
            )
            db.add(record)
            records.append(record)
        return records

    @staticmethod
    async def get(
        db: AsyncSession,
        session_id: int,
        question_id: str
    ) -> Optional[AnswerRecord]:
        result = await db.execute(
            select(AnswerRecord)
            .where(
                AnswerRecord.session_id == session_id,
                AnswerRecord.question_id == question_id
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_session(db: AsyncSession, session_id: int) -> List[AnswerRecord]:
        result = await db.execute(
            select(AnswerRecord)
            .where(AnswerRecord.session_id == session_id)
            .order_by(AnswerRecord.position)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def total_time_spent(db: AsyncSession, session_id: int) -> int:
        result = await db.execute(
            select(func.coalesce(func.sum(AnswerRecord.cumulative_time_spent_seconds), 0))
            .where(AnswerRecord.session_id == session_id)
        )
        return int(result.scalar_one())

    @staticmethod
    def upsert(
        record: AnswerRecord,
        selected_option_id=_UNSET,
        is_marked_for_review=_UNSET,
        add_time_seconds: int = 0,
        is_correct=_UNSET,
        answered_at=None
    ) -> bool:
        """
        Overwrite the given fields on an existing record.

        Returns True if anything changed. Writing the value a field already
        holds is a no-op.
        """
        changed = False

        if selected_option_id is not _UNSET and record.selected_option_id != selected_option_id:
            record.selected_option_id = selected_option_id
            record.answered_at = answered_at
            changed = True

        if is_marked_for_review is not _UNSET and record.is_marked_for_review != is_marked_for_review:
            record.is_marked_for_review = is_marked_for_review
            changed = True

        if add_time_seconds:
            record.cumulative_time_spent_seconds = (record.cumulative_time_spent_seconds or 0) + add_time_seconds
            changed = True

        if is_correct is not _UNSET and record.is_correct != is_correct:
            record.is_correct = is_correct
            changed = True

        return changed
