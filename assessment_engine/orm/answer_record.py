"""
assessment_engine/orm/answer_record.py
Answer Record Model

Per-question state inside an assessment session.

Key Design:
- Exactly one row per snapshotted question id, created at session start
- selected_option_id / is_marked_for_review are overwritable while in progress
- cumulative_time_spent_seconds never decreases
- is_correct is written once, by the finalizer
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship

from assessment_engine.orm.base import BaseModel


class AnswerRecord(BaseModel):
    """Individual answer slot within an assessment session."""

    __tablename__ = "answer_records"

    session_id = Column(
        Integer,
        ForeignKey("assessment_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent assessment session"
    )

    question_id = Column(
        String(64),
        nullable=False,
        comment="Question id from the session snapshot"
    )

    position = Column(
        Integer,
        nullable=False,
        comment="1-based position of the question in the session"
    )

    selected_option_id = Column(
        String(64),
        nullable=True,
        comment="Learner's selected option (NULL if unanswered)"
    )

    is_marked_for_review = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Learner flagged for review"
    )

    cumulative_time_spent_seconds = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Time attributed to this question"
    )

    is_correct = Column(
        Boolean,
        nullable=True,
        comment="Set at finalization"
    )

    answered_at = Column(
        DateTime,
        nullable=True,
        comment="Last time the selection was written"
    )

    session = relationship(
        "AssessmentSession",
        back_populates="answers"
    )

    __table_args__ = (
        Index("ix_answer_record_session_question", "session_id", "question_id", unique=True),
    )

    def __repr__(self):
        return f"<AnswerRecord(id={self.id}, session={self.session_id}, question={self.question_id})>"

    def to_dict(self, include_outcome: bool = False) -> dict:
        data = {
            "question_id": self.question_id,
            "position": self.position,
            "selected_option_id": self.selected_option_id,
            "is_marked_for_review": self.is_marked_for_review,
            "time_spent_seconds": self.cumulative_time_spent_seconds,
        }

        if include_outcome:
            data["is_correct"] = self.is_correct

        return data
