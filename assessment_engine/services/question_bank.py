"""
assessment_engine/services/question_bank.py
Loading papers into the bundled question bank.

Existing questions with the same id are overwritten in place. Sessions
already started keep their own question-id snapshot, so re-importing a
paper never changes a running attempt's question list.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_engine.orm.question_bank import QuestionPaper, Question, QuestionOption
from assessment_engine.schemas.assessment import PaperDefinition
from assessment_engine.services.scoring import get_scoring_policy

logger = logging.getLogger(__name__)


async def create_paper(db: AsyncSession, definition: PaperDefinition) -> QuestionPaper:
    """Upsert the paper's questions and create the paper row."""
    if definition.scoring_policy:
        get_scoring_policy(definition.scoring_policy)

    question_ids = [q.id for q in definition.questions]
    result = await db.execute(select(Question).where(Question.id.in_(question_ids)))
    existing = {q.id: q for q in result.scalars().all()}

    for item in definition.questions:
        options = [
            QuestionOption(id=option.id, text=option.text, is_correct=option.is_correct, order=index)
            for index, option in enumerate(item.options)
        ]

        question = existing.get(item.id)
        if question is None:
            question = Question(id=item.id)
            db.add(question)
            question.options = options
        else:
            question.options = []
            await db.flush()
            question.options = options

        question.stem = item.stem
        question.explanation = item.explanation
        question.difficulty = item.difficulty

    paper = QuestionPaper(
        title=definition.title,
        description=definition.description,
        question_ids=question_ids,
        time_limit_minutes=definition.time_limit_minutes,
        scoring_policy=definition.scoring_policy,
    )
    db.add(paper)

    await db.commit()
    await db.refresh(paper)

    logger.info(f"Created paper {paper.id} '{paper.title}' with {len(question_ids)} questions")
    return paper
