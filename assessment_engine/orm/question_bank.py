"""
assessment_engine/orm/question_bank.py
Question bank tables backing the bundled Question Source.

Key Design:
- A paper is an ordered list of question ids plus an optional time limit
- Questions carry ordered options, exactly one of which is correct
- The session engine never writes to these tables
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship

from assessment_engine.orm.base import Base, BaseModel, TimestampMixin


class QuestionPaper(BaseModel):
    """
    A configured exam paper.

    question_ids defines the order questions are presented in. Editing a
    paper after sessions were started from it never affects those sessions,
    which keep their own snapshot.
    """

    __tablename__ = "question_papers"

    title = Column(
        String(255),
        nullable=False,
        comment="Display title of the paper"
    )

    description = Column(
        Text,
        nullable=True
    )

    question_ids = Column(
        JSON,
        nullable=False,
        default=list,
        comment="Ordered question ids"
    )

    time_limit_minutes = Column(
        Integer,
        nullable=True,
        comment="Allowed duration in minutes (NULL means untimed)"
    )

    scoring_policy = Column(
        String(32),
        nullable=True,
        comment="Scoring policy name; falls back to the configured default"
    )

    def __repr__(self):
        return f"<QuestionPaper(id={self.id}, title={self.title!r}, questions={len(self.question_ids or [])})>"


class Question(TimestampMixin, Base):
    """Single multiple-choice question."""

    __tablename__ = "questions"

    id = Column(
        String(64),
        primary_key=True
    )

    stem = Column(
        Text,
        nullable=False,
        comment="Question text"
    )

    explanation = Column(
        Text,
        nullable=True
    )

    difficulty = Column(
        String(20),
        nullable=True
    )

    options = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.order",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<Question(id={self.id})>"

    def correct_option_id(self):
        """Id of the correct option, or None if the question has none flagged."""
        for option in self.options:
            if option.is_correct:
                return option.id
        return None

    def to_dict(self) -> dict:
        """Learner-facing payload. Never includes the correctness key."""
        return {
            "id": self.id,
            "stem": self.stem,
            "difficulty": self.difficulty,
            "options": [
                {"id": option.id, "text": option.text}
                for option in self.options
            ],
        }


class QuestionOption(TimestampMixin, Base):
    """
    Answer option of a question.

    Option ids are scoped to their question, so every question may use
    plain labels such as "A", "B", "C".
    """

    __tablename__ = "question_options"

    question_id = Column(
        String(64),
        ForeignKey("questions.id", ondelete="CASCADE"),
        primary_key=True
    )

    id = Column(
        String(64),
        primary_key=True
    )

    text = Column(
        Text,
        nullable=False
    )

    is_correct = Column(
        Boolean,
        nullable=False,
        default=False
    )

    order = Column(
        Integer,
        nullable=False,
        default=0
    )

    question = relationship(
        "Question",
        back_populates="options"
    )

    __table_args__ = (
        Index("ix_question_option_order", "question_id", "order"),
    )
