"""
assessment_engine/services/question_source.py
Question Source contract and the bundled question-bank implementation.

The engine consumes a paper once at session start (ordered question ids,
time limit, scoring policy) and the answer keys once at finalization.
It never writes through this interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.errors import ConfigurationError, ErrorCode
from assessment_engine.orm.question_bank import QuestionPaper, Question

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaperSnapshot:
    """What a session copies out of the source when it starts."""
    paper_id: Optional[int]
    question_ids: Tuple[str, ...]
    time_limit_seconds: Optional[int]
    scoring_policy: Optional[str] = None


class QuestionSource(ABC):
    """Read-only provider of papers, question payloads and answer keys."""

    @abstractmethod
    async def load_paper(self, db: AsyncSession, paper_id: int) -> PaperSnapshot:
        """Resolve a paper reference. Raises ConfigurationError if unusable."""

    @abstractmethod
    async def get_question_payloads(self, db: AsyncSession, question_ids: Sequence[str]) -> Dict[str, dict]:
        """Learner-facing payloads keyed by question id, without answer keys."""

    @abstractmethod
    async def get_answer_keys(self, db: AsyncSession, question_ids: Sequence[str]) -> Dict[str, Optional[str]]:
        """Correct option id per question id (None when unknown)."""

    @abstractmethod
    async def get_review_payloads(self, db: AsyncSession, question_ids: Sequence[str]) -> Dict[str, dict]:
        """Post-completion payloads including correct option and explanation."""


class DatabaseQuestionSource(QuestionSource):
    """Question Source backed by the question_papers / questions tables."""

    async def load_paper(self, db: AsyncSession, paper_id: int) -> PaperSnapshot:
        result = await db.execute(select(QuestionPaper).where(QuestionPaper.id == paper_id))
        paper = result.scalar_one_or_none()

        if not paper:
            raise ConfigurationError(
                f"Question paper with id '{paper_id}' not found",
                code=ErrorCode.PAPER_NOT_FOUND,
                details={"paper_id": paper_id}
            )

        question_ids = [str(qid) for qid in (paper.question_ids or [])]
        if not question_ids:
            raise ConfigurationError(
                "Question paper has no questions",
                code=ErrorCode.EMPTY_PAPER,
                details={"paper_id": paper_id}
            )

        duplicates = sorted({qid for qid in question_ids if question_ids.count(qid) > 1})
        if duplicates:
            raise ConfigurationError(
                "Question paper lists the same question more than once",
                details={"paper_id": paper_id, "duplicate_question_ids": duplicates}
            )

        found = await db.execute(select(Question.id).where(Question.id.in_(question_ids)))
        known = set(found.scalars().all())
        missing = [qid for qid in question_ids if qid not in known]
        if missing:
            raise ConfigurationError(
                "Question paper references unknown questions",
                details={"paper_id": paper_id, "missing_question_ids": missing}
            )

        if paper.time_limit_minutes is not None and paper.time_limit_minutes <= 0:
            raise ConfigurationError(
                "Time limit must be a positive number of minutes",
                details={"paper_id": paper_id, "time_limit_minutes": paper.time_limit_minutes}
            )

        time_limit_seconds = paper.time_limit_minutes * 60 if paper.time_limit_minutes else None

        return PaperSnapshot(
            paper_id=paper.id,
            question_ids=tuple(question_ids),
            time_limit_seconds=time_limit_seconds,
            scoring_policy=paper.scoring_policy,
        )

    async def _load_questions(self, db: AsyncSession, question_ids: Sequence[str]) -> List[Question]:
        if not question_ids:
            return []
        result = await db.execute(select(Question).where(Question.id.in_(list(question_ids))))
        return list(result.scalars().all())

    async def get_question_payloads(self, db: AsyncSession, question_ids: Sequence[str]) -> Dict[str, dict]:
        return {q.id: q.to_dict() for q in await self._load_questions(db, question_ids)}

    async def get_answer_keys(self, db: AsyncSession, question_ids: Sequence[str]) -> Dict[str, Optional[str]]:
        questions = await self._load_questions(db, question_ids)
        keys = {q.id: q.correct_option_id() for q in questions}

        missing = [qid for qid in question_ids if qid not in keys]
        if missing:
            logger.warning(f"Answer keys unavailable for {len(missing)} question(s): {missing}")

        return keys

    async def get_review_payloads(self, db: AsyncSession, question_ids: Sequence[str]) -> Dict[str, dict]:
        payloads = {}
        for question in await self._load_questions(db, question_ids):
            data = question.to_dict()
            data["correct_option_id"] = question.correct_option_id()
            data["explanation"] = question.explanation
            payloads[question.id] = data
        return payloads


# Default source used by the engine and the gateway
question_source: QuestionSource = DatabaseQuestionSource()
