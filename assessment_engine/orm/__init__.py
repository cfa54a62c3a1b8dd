from .base import Base

# Question bank
from .question_bank import QuestionPaper, Question, QuestionOption

# Assessment sessions
from .assessment_session import AssessmentSession, SessionStatus, FinalizationReason
from .answer_record import AnswerRecord
from .assessment_result import AssessmentResult
