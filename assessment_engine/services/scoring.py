"""
assessment_engine/services/scoring.py
Pluggable scoring policies.

Scoring is a pure function of (answer records, answer keys, policy).
The policy name and its parameters are snapshotted on the session at start,
so a session is always scored by the policy it was started under even if
the configured marks change before it finalizes.

Uses Decimal for percentage rounding to avoid float drift.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from assessment_engine.config import settings
from assessment_engine.errors import ConfigurationError

QUANTIZER_2DP = Decimal("0.01")


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: str
    position: int
    selected_option_id: Optional[str]
    correct_option_id: Optional[str]
    is_correct: bool
    marks: float
    time_spent_seconds: int
    is_marked_for_review: bool

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ScoreSheet:
    policy: str
    total_questions: int
    attempted_count: int
    correct_count: int
    marks_obtained: float
    max_marks: float
    score_percent: float
    outcomes: Tuple[QuestionOutcome, ...]


class ScoringPolicy(ABC):
    """Maps one question's outcome to marks."""

    name: str = ""

    @property
    @abstractmethod
    def marks_per_question(self) -> float:
        """Marks a correct answer earns; max marks = this * total questions."""

    @abstractmethod
    def marks_for(self, is_answered: bool, is_correct: bool) -> float:
        """Marks for a single question."""

    def params(self) -> Dict[str, Any]:
        """Parameters to snapshot on a session; empty for fixed policies."""
        return {}

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> "ScoringPolicy":
        return cls()


class FlatScoringPolicy(ScoringPolicy):
    """+1 for correct, 0 otherwise."""

    name = "flat"

    @property
    def marks_per_question(self) -> float:
        return 1.0

    def marks_for(self, is_answered: bool, is_correct: bool) -> float:
        return 1.0 if is_correct else 0.0


class NegativeMarkingPolicy(ScoringPolicy):
    """Configurable marks for correct and wrong answers; unanswered scores 0."""

    name = "negative_marking"

    def __init__(self, correct_marks: Optional[float] = None, wrong_marks: Optional[float] = None):
        self.correct_marks = float(settings.NEGATIVE_MARKING_CORRECT if correct_marks is None else correct_marks)
        self.wrong_marks = float(settings.NEGATIVE_MARKING_WRONG if wrong_marks is None else wrong_marks)

    @property
    def marks_per_question(self) -> float:
        return self.correct_marks

    def marks_for(self, is_answered: bool, is_correct: bool) -> float:
        if not is_answered:
            return 0.0
        return self.correct_marks if is_correct else self.wrong_marks

    def params(self) -> Dict[str, Any]:
        return {"correct_marks": self.correct_marks, "wrong_marks": self.wrong_marks}

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]]) -> "NegativeMarkingPolicy":
        params = params or {}
        return cls(params.get("correct_marks"), params.get("wrong_marks"))


SCORING_POLICIES = {
    FlatScoringPolicy.name: FlatScoringPolicy,
    NegativeMarkingPolicy.name: NegativeMarkingPolicy,
}


def get_scoring_policy(name: Optional[str], params: Optional[Mapping[str, Any]] = None) -> ScoringPolicy:
    """
    Instantiate a policy by name; unknown names are a configuration error.

    params is the snapshot taken when the session started. Without it the
    policy reads its marks from the current settings.
    """
    policy_name = name or settings.DEFAULT_SCORING_POLICY
    policy_cls = SCORING_POLICIES.get(policy_name)
    if policy_cls is None:
        raise ConfigurationError(
            f"Unknown scoring policy: {policy_name}",
            details={"scoring_policy": policy_name, "allowed": sorted(SCORING_POLICIES)}
        )
    return policy_cls.from_params(params)


def _percent(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    value = Decimal(str(max(0.0, numerator))) / Decimal(str(denominator)) * 100
    return float(value.quantize(QUANTIZER_2DP, rounding=ROUND_HALF_UP))


def score_answers(
    records: Sequence,
    answer_keys: Mapping[str, Optional[str]],
    policy: ScoringPolicy
) -> ScoreSheet:
    """
    Score a session's answer records.

    A question is correct only when an option was selected and it equals
    the key. Questions without a key are scored as incorrect.
    """
    outcomes: List[QuestionOutcome] = []
    marks_total = 0.0

    for record in sorted(records, key=lambda r: r.position):
        correct_option_id = answer_keys.get(record.question_id)
        is_answered = record.selected_option_id is not None
        is_correct = is_answered and correct_option_id is not None and record.selected_option_id == correct_option_id
        marks = policy.marks_for(is_answered, is_correct)
        marks_total += marks

        outcomes.append(QuestionOutcome(
            question_id=record.question_id,
            position=record.position,
            selected_option_id=record.selected_option_id,
            correct_option_id=correct_option_id,
            is_correct=is_correct,
            marks=marks,
            time_spent_seconds=record.cumulative_time_spent_seconds or 0,
            is_marked_for_review=bool(record.is_marked_for_review),
        ))

    total = len(outcomes)
    max_marks = policy.marks_per_question * total

    return ScoreSheet(
        policy=policy.name,
        total_questions=total,
        attempted_count=sum(1 for o in outcomes if o.selected_option_id is not None),
        correct_count=sum(1 for o in outcomes if o.is_correct),
        marks_obtained=marks_total,
        max_marks=max_marks,
        score_percent=_percent(marks_total, max_marks),
        outcomes=tuple(outcomes),
    )


def outcome_snapshot(sheet: ScoreSheet) -> List[Dict]:
    """JSON-ready per-question outcome list stored on the result."""
    return [o.to_dict() for o in sheet.outcomes]
