"""
Timer authority: deadline and expiry come from the server clock only.
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

from assessment_engine.services import timer_authority

STARTED = datetime(2026, 3, 1, 9, 0, 0)


def make_session(time_limit_seconds=600, completed_at=None):
    return SimpleNamespace(started_at=STARTED, time_limit_seconds=time_limit_seconds, completed_at=completed_at)


class TestDeadline:

    def test_deadline_is_start_plus_limit(self):
        assert timer_authority.deadline(make_session(600)) == STARTED + timedelta(seconds=600)

    def test_untimed_session_has_no_deadline(self):
        assert timer_authority.deadline(make_session(None)) is None


class TestIsExpired:

    def test_not_expired_before_deadline(self):
        session = make_session(600)
        assert timer_authority.is_expired(session, STARTED + timedelta(seconds=599), grace_seconds=0) is False

    def test_expired_exactly_at_deadline(self):
        session = make_session(600)
        assert timer_authority.is_expired(session, STARTED + timedelta(seconds=600), grace_seconds=0) is True

    def test_grace_extends_the_deadline(self):
        session = make_session(600)
        now = STARTED + timedelta(seconds=605)
        assert timer_authority.is_expired(session, now, grace_seconds=10) is False
        assert timer_authority.is_expired(session, now, grace_seconds=5) is True

    def test_untimed_session_never_expires(self):
        session = make_session(None)
        assert timer_authority.is_expired(session, STARTED + timedelta(days=365), grace_seconds=0) is False


class TestRemainingAndElapsed:

    def test_remaining_counts_down_and_floors_at_zero(self):
        session = make_session(600)
        assert timer_authority.remaining_seconds(session, STARTED + timedelta(seconds=100)) == 500
        assert timer_authority.remaining_seconds(session, STARTED + timedelta(seconds=900)) == 0

    def test_remaining_is_none_when_untimed(self):
        assert timer_authority.remaining_seconds(make_session(None), STARTED) is None

    def test_remaining_is_zero_once_completed(self):
        session = make_session(600, completed_at=STARTED + timedelta(seconds=10))
        assert timer_authority.remaining_seconds(session, STARTED + timedelta(seconds=20)) == 0

    def test_elapsed_never_negative(self):
        assert timer_authority.elapsed_seconds(make_session(), STARTED - timedelta(seconds=5)) == 0
        assert timer_authority.elapsed_seconds(make_session(), STARTED + timedelta(seconds=42)) == 42

    def test_timer_state_shape(self):
        state = timer_authority.timer_state(make_session(600), STARTED + timedelta(seconds=60))
        assert state["deadline"] == (STARTED + timedelta(seconds=600)).isoformat()
        assert state["remaining_seconds"] == 540
        assert state["elapsed_seconds"] == 60
        assert state["is_expired"] is False
        assert state["server_time"] == (STARTED + timedelta(seconds=60)).isoformat()
