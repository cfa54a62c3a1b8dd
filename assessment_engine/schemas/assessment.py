"""
assessment_engine/schemas/assessment.py
Session gateway request schemas and the question-paper import format
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal


class StartSessionRequest(BaseModel):
    """Start a new attempt at a question paper"""
    paper_id: int = Field(..., gt=0, description="Question paper ID")

    class Config:
        json_schema_extra = {
            "example": {"paper_id": 1}
        }


class RecordAnswerRequest(BaseModel):
    """Select (or clear, with null) the option for one question"""
    question_id: str = Field(..., min_length=1, max_length=64, description="Question ID from the session")
    selected_option_id: Optional[str] = Field(None, max_length=64, description="Option ID, or null to clear")

    class Config:
        json_schema_extra = {
            "example": {"question_id": "q1", "selected_option_id": "q1-b"}
        }


class ToggleReviewRequest(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=64)


class AccountTimeRequest(BaseModel):
    """Seconds spent on a question since the last report"""
    question_id: str = Field(..., min_length=1, max_length=64)
    delta_seconds: int = Field(..., description="Non-negative seconds to attribute")


class SubmitRequest(BaseModel):
    reason: Literal["USER_SUBMIT", "TIMEOUT", "ADMIN_FORCE"] = Field(
        "USER_SUBMIT",
        description="Client's reason; the server clock decides TIMEOUT"
    )


# =============================================================================
# Question paper import (CLI: paper create --file)
# =============================================================================

class PaperOption(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    text: str
    is_correct: bool = False


class PaperQuestion(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    stem: str
    explanation: Optional[str] = None
    difficulty: Optional[str] = None
    options: List[PaperOption] = Field(..., min_length=2)

    @field_validator("options")
    @classmethod
    def unique_options_one_correct(cls, options: List[PaperOption]) -> List[PaperOption]:
        option_ids = [option.id for option in options]
        if len(set(option_ids)) != len(option_ids):
            raise ValueError("option ids must be unique within a question")
        if sum(1 for option in options if option.is_correct) != 1:
            raise ValueError("each question needs exactly one correct option")
        return options


class PaperDefinition(BaseModel):
    """JSON file accepted by `paper create`"""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    scoring_policy: Optional[str] = None
    questions: List[PaperQuestion] = Field(..., min_length=1)

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, questions: List[PaperQuestion]) -> List[PaperQuestion]:
        question_ids = [q.id for q in questions]
        if len(set(question_ids)) != len(question_ids):
            raise ValueError("question ids must be unique within a paper")
        return questions

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Constitutional Law - Mock 1",
                "time_limit_minutes": 30,
                "questions": [
                    {
                        "id": "q1",
                        "stem": "Which article guarantees the right to life?",
                        "options": [
                            {"id": "q1-a", "text": "Article 14"},
                            {"id": "q1-b", "text": "Article 21", "is_correct": True}
                        ]
                    }
                ]
            }
        }
