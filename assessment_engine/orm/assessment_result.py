"""
assessment_engine/orm/assessment_result.py
Frozen Assessment Result

Created exactly once per session by the finalizer and never updated.
The unique index on session_id backs the exactly-once guarantee at the
storage level; result_hash allows tamper detection.
"""

import hashlib
import json
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Index, JSON, Enum as SQLEnum

from assessment_engine.orm.assessment_session import FinalizationReason
from assessment_engine.orm.base import BaseModel

QUANTIZER_2DP = Decimal("0.01")


def quantize_2dp(value) -> Decimal:
    return Decimal(str(value)).quantize(QUANTIZER_2DP, rounding=ROUND_HALF_UP)


class AssessmentResult(BaseModel):
    """Immutable outcome of one finalized session."""

    __tablename__ = "assessment_results"

    session_id = Column(
        Integer,
        ForeignKey("assessment_sessions.id", ondelete="CASCADE"),
        nullable=False,
        comment="Finalized session"
    )

    total_questions = Column(Integer, nullable=False)

    attempted_count = Column(Integer, nullable=False, default=0)

    correct_count = Column(Integer, nullable=False, default=0)

    score_percent = Column(Float, nullable=False, default=0.0)

    marks_obtained = Column(Float, nullable=False, default=0.0)

    max_marks = Column(Float, nullable=False, default=0.0)

    scoring_policy = Column(
        String(32),
        nullable=False,
        comment="Policy the score was computed with"
    )

    per_question_outcome = Column(
        JSON,
        nullable=False,
        comment="Ordered per-question outcome snapshot"
    )

    time_taken_seconds = Column(Integer, nullable=False, default=0)

    finalization_reason = Column(
        SQLEnum(FinalizationReason),
        nullable=False
    )

    finalized_at = Column(DateTime, nullable=False)

    result_hash = Column(
        String(64),
        nullable=False,
        comment="SHA256 over the canonical result payload"
    )

    __table_args__ = (
        Index("ix_assessment_result_session", "session_id", unique=True),
    )

    def __repr__(self):
        return (
            f"<AssessmentResult(session_id={self.session_id}, correct={self.correct_count}/"
            f"{self.total_questions}, reason={self.finalization_reason})>"
        )

    def compute_hash(self) -> str:
        """
        Compute SHA256 hash of the result for tamper detection.

        Formula:
        SHA256(f"{session_id}|{total}|{correct}|{score:.2f}|{marks:.2f}|{max:.2f}|{policy}|{reason}|{finalized_at}|{outcome_json}")
        """
        outcome_json = json.dumps(self.per_question_outcome, sort_keys=True, separators=(",", ":"))
        reason = self.finalization_reason.value if self.finalization_reason else ""
        combined = (
            f"{self.session_id}|"
            f"{self.total_questions}|"
            f"{self.correct_count}|"
            f"{quantize_2dp(self.score_percent):.2f}|"
            f"{quantize_2dp(self.marks_obtained):.2f}|"
            f"{quantize_2dp(self.max_marks):.2f}|"
            f"{self.scoring_policy}|"
            f"{reason}|"
            f"{self.finalized_at.isoformat() if self.finalized_at else ''}|"
            f"{outcome_json}"
        )
        return hashlib.sha256(combined.encode()).hexdigest()

    def verify_hash(self) -> bool:
        return self.result_hash == self.compute_hash()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with deterministic ordering."""
        return {
            "session_id": self.session_id,
            "total_questions": self.total_questions,
            "attempted_count": self.attempted_count,
            "correct_count": self.correct_count,
            "score_percent": self.score_percent,
            "marks_obtained": self.marks_obtained,
            "max_marks": self.max_marks,
            "scoring_policy": self.scoring_policy,
            "per_question_outcome": self.per_question_outcome,
            "time_taken_seconds": self.time_taken_seconds,
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
            "finalization_reason": self.finalization_reason.value if self.finalization_reason else None,
            "result_hash": self.result_hash,
        }
