"""
Answer ledger: storage only, no business rules, never commits.
"""
from assessment_engine.clock import utcnow
from assessment_engine.services import session_engine
from assessment_engine.services.answer_ledger import AnswerLedger
from assessment_engine.tests.factories import seed_paper


async def _started(db, owner_id):
    paper = await seed_paper(db)
    return await session_engine.start_session(db, owner_id, paper.id)


async def test_one_record_per_question_in_order(db, owner_id):
    session = await _started(db, owner_id)

    records = await AnswerLedger.list_by_session(db, session.id)

    assert [r.question_id for r in records] == ["q1", "q2", "q3"]
    assert [r.position for r in records] == [1, 2, 3]
    assert all(r.selected_option_id is None and r.is_correct is None for r in records)


async def test_upsert_same_value_is_noop(db, owner_id):
    session = await _started(db, owner_id)
    record = await AnswerLedger.get(db, session.id, "q1")

    assert AnswerLedger.upsert(record, selected_option_id="q1-a", answered_at=utcnow()) is True
    assert AnswerLedger.upsert(record, selected_option_id="q1-a", answered_at=utcnow()) is False
    assert AnswerLedger.upsert(record, is_marked_for_review=False) is False


async def test_time_only_accumulates(db, owner_id):
    session = await _started(db, owner_id)
    record = await AnswerLedger.get(db, session.id, "q2")

    AnswerLedger.upsert(record, add_time_seconds=5)
    AnswerLedger.upsert(record, add_time_seconds=7)
    await db.flush()

    assert record.cumulative_time_spent_seconds == 12
    assert await AnswerLedger.total_time_spent(db, session.id) == 12


async def test_get_unknown_question(db, owner_id):
    session = await _started(db, owner_id)
    assert await AnswerLedger.get(db, session.id, "nope") is None
