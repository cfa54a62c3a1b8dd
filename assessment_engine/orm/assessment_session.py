"""
assessment_engine/orm/assessment_session.py
Timed Assessment Session Model

Aggregate root of one learner's attempt at a fixed set of questions.

Key Design:
- question_ids is snapshotted at start and never changes
- status only moves IN_PROGRESS -> COMPLETED
- version is bumped on every accepted mutation; finalization is a
  compare-and-set on (status, version)
- completed_at is NULL exactly while the session is in progress
"""

from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Index, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship

from assessment_engine.clock import utcnow
from assessment_engine.orm.base import BaseModel


class SessionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class FinalizationReason(str, Enum):
    USER_SUBMIT = "USER_SUBMIT"
    TIMEOUT = "TIMEOUT"
    ADMIN_FORCE = "ADMIN_FORCE"


class AssessmentSession(BaseModel):
    """
    Tracks a single timed assessment attempt.

    Lifecycle:
    1. Learner starts a paper -> session created (status=IN_PROGRESS, version=0)
    2. Answers, review flags and time deltas land on AnswerRecord rows
    3. Learner submits OR deadline passes -> Finalizer flips status once
    4. Session stays readable forever in COMPLETED state
    """

    __tablename__ = "assessment_sessions"

    owner_id = Column(
        String(64),
        nullable=False,
        index=True,
        comment="Principal the session belongs to"
    )

    paper_id = Column(
        Integer,
        nullable=True,
        index=True,
        comment="Question paper the session was started from"
    )

    question_ids = Column(
        JSON,
        nullable=False,
        comment="Ordered question ids snapshotted at start"
    )

    status = Column(
        SQLEnum(SessionStatus),
        nullable=False,
        default=SessionStatus.IN_PROGRESS,
        index=True,
        comment="Current session status"
    )

    started_at = Column(
        DateTime,
        nullable=False,
        default=utcnow,
        comment="When the session was started"
    )

    time_limit_seconds = Column(
        Integer,
        nullable=True,
        comment="Allowed duration in seconds (NULL means untimed)"
    )

    completed_at = Column(
        DateTime,
        nullable=True,
        comment="When the session was finalized (NULL if in progress)"
    )

    version = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Incremented on every accepted mutation"
    )

    scoring_policy = Column(
        String(32),
        nullable=False,
        comment="Scoring policy snapshotted at start"
    )

    scoring_params = Column(
        JSON,
        nullable=True,
        comment="Policy parameters snapshotted at start (marks per outcome)"
    )

    answers = relationship(
        "AnswerRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="AnswerRecord.position",
        lazy="selectin"
    )

    __table_args__ = (
        Index("ix_owner_assessment_sessions", "owner_id", "status"),
        Index("ix_assessment_session_sweep", "status", "time_limit_seconds"),
    )

    def __repr__(self):
        return f"<AssessmentSession(id={self.id}, owner_id={self.owner_id}, status={self.status}, version={self.version})>"

    @property
    def is_completed(self) -> bool:
        return self.status == SessionStatus.COMPLETED

    @property
    def total_questions(self) -> int:
        return len(self.question_ids or [])

    def to_summary(self) -> dict:
        """Summary returned when a session is created or listed."""
        return {
            "id": self.id,
            "paper_id": self.paper_id,
            "status": self.status.value,
            "question_count": self.total_questions,
            "time_limit_seconds": self.time_limit_seconds,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "version": self.version,
        }
