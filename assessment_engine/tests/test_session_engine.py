"""
Session state machine: lifecycle, guards, time accounting and read models.
"""
from datetime import timedelta

import pytest

from assessment_engine.clock import utcnow
from assessment_engine.config import settings
from assessment_engine.errors import (
    ConfigurationError,
    DeadlineExceededError,
    ErrorCode,
    ForbiddenError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from assessment_engine.orm.assessment_session import SessionStatus, FinalizationReason
from assessment_engine.orm.question_bank import Question, QuestionPaper
from assessment_engine.services import session_engine
from assessment_engine.services.answer_ledger import AnswerLedger
from assessment_engine.services.finalizer import load_session
from assessment_engine.tests.factories import seed_paper


@pytest.fixture
def t0():
    return utcnow().replace(microsecond=0)


async def start(db, owner_id, t0, **paper_kwargs):
    paper = await seed_paper(db, **paper_kwargs)
    return await session_engine.start_session(db, owner_id, paper.id, now=t0)


# =============================================================================
# Start
# =============================================================================

class TestStartSession:

    async def test_snapshot_and_initial_state(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=10)

        assert session.status == SessionStatus.IN_PROGRESS
        assert session.version == 0
        assert session.question_ids == ["q1", "q2", "q3"]
        assert session.time_limit_seconds == 600
        assert session.started_at == t0
        assert session.completed_at is None
        assert session.scoring_policy == "flat"

        records = await AnswerLedger.list_by_session(db, session.id)
        assert [r.question_id for r in records] == session.question_ids

    async def test_paper_policy_is_snapshotted(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, scoring_policy="negative_marking")
        assert session.scoring_policy == "negative_marking"
        assert session.scoring_params == {
            "correct_marks": float(settings.NEGATIVE_MARKING_CORRECT),
            "wrong_marks": float(settings.NEGATIVE_MARKING_WRONG),
        }

    async def test_marks_changed_mid_exam_do_not_affect_scoring(self, db, owner_id, t0, monkeypatch):
        monkeypatch.setattr(settings, "NEGATIVE_MARKING_CORRECT", 4)
        monkeypatch.setattr(settings, "NEGATIVE_MARKING_WRONG", -1)
        session = await start(db, owner_id, t0, scoring_policy="negative_marking")
        await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0)
        await session_engine.record_answer(db, session.id, owner_id, "q2", "q2-a", now=t0)

        monkeypatch.setattr(settings, "NEGATIVE_MARKING_CORRECT", 1)
        monkeypatch.setattr(settings, "NEGATIVE_MARKING_WRONG", 0)
        result = await session_engine.submit(db, session.id, owner_id, now=t0 + timedelta(seconds=30))

        assert result.marks_obtained == 3.0
        assert result.max_marks == 12.0
        assert result.score_percent == 25.0

    async def test_unknown_paper_is_configuration_error(self, db, owner_id):
        with pytest.raises(ConfigurationError):
            await session_engine.start_session(db, owner_id, 4242)

    async def test_each_start_is_a_new_session(self, db, owner_id, t0):
        paper = await seed_paper(db)
        first = await session_engine.start_session(db, owner_id, paper.id, now=t0)
        second = await session_engine.start_session(db, owner_id, paper.id, now=t0)
        assert first.id != second.id


# =============================================================================
# Guards
# =============================================================================

class TestGuards:

    async def test_unknown_session(self, db, owner_id):
        with pytest.raises(NotFoundError) as exc_info:
            await session_engine.record_answer(db, 999, owner_id, "q1", "q1-a")
        assert exc_info.value.code == ErrorCode.SESSION_NOT_FOUND

    async def test_other_owner_looks_like_not_found(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(ForbiddenError) as exc_info:
            await session_engine.record_answer(db, session.id, "intruder", "q1", "q1-a", now=t0)

        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.status_code == 404
        assert exc_info.value.code == ErrorCode.SESSION_NOT_FOUND

    async def test_unknown_question(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(NotFoundError) as exc_info:
            await session_engine.toggle_review(db, session.id, owner_id, "q99", now=t0)
        assert exc_info.value.code == ErrorCode.QUESTION_NOT_FOUND

    async def test_option_from_another_question_rejected(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(InvalidInputError):
            await session_engine.record_answer(db, session.id, owner_id, "q1", "q2-a", now=t0)

    async def test_answer_for_question_removed_from_bank_rejected(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)
        removed = await db.get(Question, "q2")
        await db.delete(removed)
        await db.commit()

        with pytest.raises(InvalidInputError):
            await session_engine.record_answer(db, session.id, owner_id, "q2", "anything", now=t0)

        record = await AnswerLedger.get(db, session.id, "q2")
        assert record.selected_option_id is None

        cleared = await session_engine.record_answer(db, session.id, owner_id, "q2", None, now=t0)
        assert cleared["answer"]["selected_option_id"] is None

    async def test_no_mutation_after_completion(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)
        await session_engine.submit(db, session.id, owner_id, now=t0 + timedelta(seconds=5))

        later = t0 + timedelta(seconds=6)
        with pytest.raises(InvalidStateError):
            await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=later)
        with pytest.raises(InvalidStateError):
            await session_engine.toggle_review(db, session.id, owner_id, "q1", now=later)
        with pytest.raises(InvalidStateError):
            await session_engine.account_time(db, session.id, owner_id, "q1", 1, now=later)

        records = await AnswerLedger.list_by_session(db, session.id)
        assert all(r.selected_option_id is None for r in records)
        assert all(not r.is_marked_for_review for r in records)


# =============================================================================
# Deadline
# =============================================================================

class TestDeadline:

    async def test_write_just_before_deadline_is_accepted(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=1)

        response = await session_engine.record_answer(
            db, session.id, owner_id, "q1", "q1-a", now=t0 + timedelta(seconds=59)
        )
        assert response["version"] == 1

    async def test_write_at_deadline_auto_finalizes(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=1)
        await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0 + timedelta(seconds=10))

        with pytest.raises(DeadlineExceededError) as exc_info:
            await session_engine.record_answer(
                db, session.id, owner_id, "q2", "q2-b", now=t0 + timedelta(seconds=60)
            )
        assert exc_info.value.status_code == 410

        reloaded = await load_session(db, session.id)
        assert reloaded.status == SessionStatus.COMPLETED
        assert reloaded.completed_at is not None

        result = await session_engine.get_session_result(db, session.id, owner_id)
        assert result.finalization_reason == FinalizationReason.TIMEOUT
        assert result.correct_count == 1
        assert result.per_question_outcome[1]["selected_option_id"] is None

    async def test_read_after_deadline_finalizes(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=1)

        view = await session_engine.get_session_view(db, session.id, owner_id, now=t0 + timedelta(minutes=5))

        assert view["status"] == "COMPLETED"
        assert view["timer"]["remaining_seconds"] == 0

    async def test_submit_after_deadline_records_timeout(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=1)

        result = await session_engine.submit(db, session.id, owner_id, now=t0 + timedelta(seconds=120))

        assert result.finalization_reason == FinalizationReason.TIMEOUT
        assert result.time_taken_seconds == 60

    async def test_client_claimed_timeout_before_deadline(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=1)

        result = await session_engine.submit(
            db, session.id, owner_id, FinalizationReason.TIMEOUT, now=t0 + timedelta(seconds=30)
        )
        assert result.finalization_reason == FinalizationReason.USER_SUBMIT

    async def test_untimed_session_has_no_deadline(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        response = await session_engine.record_answer(
            db, session.id, owner_id, "q1", "q1-a", now=t0 + timedelta(days=30)
        )
        assert response["answer"]["selected_option_id"] == "q1-a"


# =============================================================================
# Answers and review flags
# =============================================================================

class TestAnswers:

    async def test_overwrite_bumps_version(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        first = await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0)
        second = await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-c", now=t0)

        assert first["version"] == 1
        assert second["version"] == 2
        assert second["answer"]["selected_option_id"] == "q1-c"
        assert second["palette_status"] == "answered"

    async def test_same_answer_twice_is_noop(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0)
        repeat = await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0)

        assert repeat["version"] == 1

    async def test_null_clears_answer(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0)
        cleared = await session_engine.record_answer(db, session.id, owner_id, "q1", None, now=t0)

        assert cleared["answer"]["selected_option_id"] is None
        assert cleared["palette_status"] == "unanswered"

    async def test_toggle_review_flips(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        on = await session_engine.toggle_review(db, session.id, owner_id, "q2", now=t0)
        off = await session_engine.toggle_review(db, session.id, owner_id, "q2", now=t0)

        assert on["answer"]["is_marked_for_review"] is True
        assert on["palette_status"] == "reviewed-only"
        assert off["answer"]["is_marked_for_review"] is False
        assert off["version"] == 2


# =============================================================================
# Time accounting
# =============================================================================

class TestAccountTime:

    async def test_negative_delta_rejected(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(InvalidInputError):
            await session_engine.account_time(db, session.id, owner_id, "q1", -5, now=t0)

    async def test_clamped_to_unattributed_wall_clock(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)
        now = t0 + timedelta(seconds=30)

        first = await session_engine.account_time(db, session.id, owner_id, "q1", 100, now=now)
        second = await session_engine.account_time(db, session.id, owner_id, "q2", 10, now=now)

        assert first["applied_delta_seconds"] == 30
        assert second["applied_delta_seconds"] == 0
        assert second["version"] == first["version"]
        assert await AnswerLedger.total_time_spent(db, session.id) == 30

    async def test_clamped_to_per_call_ceiling(self, db, owner_id, t0, monkeypatch):
        monkeypatch.setattr(settings, "MAX_TIME_DELTA_SECONDS", 5)
        session = await start(db, owner_id, t0)

        response = await session_engine.account_time(
            db, session.id, owner_id, "q1", 50, now=t0 + timedelta(seconds=100)
        )
        assert response["applied_delta_seconds"] == 5

    async def test_clamped_to_remaining_budget(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=1)

        response = await session_engine.account_time(
            db, session.id, owner_id, "q1", 100, now=t0 + timedelta(seconds=50)
        )
        assert response["applied_delta_seconds"] == 10

    async def test_accumulates_across_calls(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        await session_engine.account_time(db, session.id, owner_id, "q1", 10, now=t0 + timedelta(seconds=10))
        response = await session_engine.account_time(db, session.id, owner_id, "q1", 15, now=t0 + timedelta(seconds=40))

        assert response["answer"]["time_spent_seconds"] == 25

    async def test_zero_delta_is_noop(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        response = await session_engine.account_time(db, session.id, owner_id, "q1", 0, now=t0 + timedelta(seconds=5))

        assert response["applied_delta_seconds"] == 0
        assert response["version"] == 0


# =============================================================================
# Submit
# =============================================================================

class TestSubmit:

    async def test_submit_scores_and_freezes(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)
        for question_id, option_id in (("q1", "q1-a"), ("q2", "q2-a"), ("q3", "q3-c")):
            await session_engine.record_answer(db, session.id, owner_id, question_id, option_id, now=t0)

        result = await session_engine.submit(db, session.id, owner_id, now=t0 + timedelta(seconds=90))

        assert result.finalization_reason == FinalizationReason.USER_SUBMIT
        assert result.total_questions == 3
        assert result.correct_count == 2
        assert result.score_percent == pytest.approx(66.67)
        assert result.time_taken_seconds == 90

        records = await AnswerLedger.list_by_session(db, session.id)
        assert [r.is_correct for r in records] == [True, False, True]

    async def test_admin_force_not_accepted_from_learner(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(InvalidInputError):
            await session_engine.submit(db, session.id, owner_id, FinalizationReason.ADMIN_FORCE)

    async def test_force_finalize(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        result = await session_engine.force_finalize(db, session.id, now=t0 + timedelta(seconds=3))

        assert result.finalization_reason == FinalizationReason.ADMIN_FORCE

    async def test_submit_by_other_owner(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(ForbiddenError):
            await session_engine.submit(db, session.id, "intruder")


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    async def test_session_view(self, db, owner_id, t0):
        session = await start(db, owner_id, t0, time_limit_minutes=10)
        await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-a", now=t0)
        await session_engine.toggle_review(db, session.id, owner_id, "q2", now=t0)
        await session_engine.record_answer(db, session.id, owner_id, "q3", "q3-b", now=t0)
        await session_engine.toggle_review(db, session.id, owner_id, "q3", now=t0)

        view = await session_engine.get_session_view(db, session.id, owner_id, now=t0 + timedelta(seconds=60))

        assert view["status"] == "IN_PROGRESS"
        assert view["version"] == 4
        assert [p["status"] for p in view["palette"]] == ["answered", "reviewed-only", "answered+reviewed"]
        assert view["progress"]["answered"] == 2
        assert view["progress"]["marked_for_review"] == 2
        assert view["timer"]["remaining_seconds"] == 540
        assert all("is_correct" not in answer for answer in view["answers"])

    async def test_questions_survive_source_changes(self, db, owner_id, t0):
        paper = await seed_paper(db)
        session = await session_engine.start_session(db, owner_id, paper.id, now=t0)

        stored_paper = await db.get(QuestionPaper, paper.id)
        stored_paper.question_ids = ["q3", "q1"]
        removed = await db.get(Question, "q2")
        await db.delete(removed)
        await db.commit()

        payload = await session_engine.get_session_questions(db, session.id, owner_id)

        assert payload["question_ids"] == ["q1", "q2", "q3"]
        assert [q["id"] for q in payload["questions"]] == ["q1", "q2", "q3"]
        assert payload["questions"][1] == {"id": "q2", "available": False, "position": 2}
        assert all("correct_option_id" not in q for q in payload["questions"])

    async def test_result_not_found_until_completed(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)

        with pytest.raises(NotFoundError) as exc_info:
            await session_engine.get_session_result(db, session.id, owner_id)
        assert exc_info.value.code == ErrorCode.RESULT_NOT_FOUND

        await session_engine.submit(db, session.id, owner_id)
        result = await session_engine.get_session_result(db, session.id, owner_id)
        assert result.session_id == session.id

    async def test_review_sheet(self, db, owner_id, t0):
        session = await start(db, owner_id, t0)
        await session_engine.record_answer(db, session.id, owner_id, "q1", "q1-d", now=t0)

        with pytest.raises(InvalidStateError) as exc_info:
            await session_engine.get_review_sheet(db, session.id, owner_id)
        assert exc_info.value.code == ErrorCode.NOT_COMPLETED

        await session_engine.submit(db, session.id, owner_id)
        sheet = await session_engine.get_review_sheet(db, session.id, owner_id)

        first = sheet["questions"][0]
        assert first["selected_option_id"] == "q1-d"
        assert first["correct_option_id"] == "q1-a"
        assert first["is_correct"] is False
        assert first["explanation"].startswith("Option A")

    async def test_history_is_per_owner_and_recent_first(self, db, owner_id, t0):
        paper = await seed_paper(db)
        older = await session_engine.start_session(db, owner_id, paper.id, now=t0 - timedelta(hours=1))
        newer = await session_engine.start_session(db, owner_id, paper.id, now=t0)
        await session_engine.start_session(db, "someone-else", paper.id, now=t0)
        await session_engine.submit(db, older.id, owner_id)

        history = await session_engine.list_sessions(db, owner_id)

        assert [entry["id"] for entry in history] == [newer.id, older.id]
        assert history[1]["score_percent"] == 0.0
        assert history[1]["finalization_reason"] == "USER_SUBMIT"
        assert history[0]["score_percent"] is None

        assert len(await session_engine.list_sessions(db, owner_id, limit=1)) == 1
