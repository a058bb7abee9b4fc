"""
브라우저 세션 / 응시 레지스트리 테스트
"""

import threading

import pytest

from api.session import AttemptRegistry, SessionRegistry
from mock_exam_cbt.models.session_state import SessionState
from mock_exam_cbt.services.errors import DefinitionNotFound
from mock_exam_cbt.services.snapshot_store import FileSnapshotStore, MemorySnapshotStore


class FailingOnceSnapshotStore(MemorySnapshotStore):
    """첫 load()만 예외를 낸다."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    def load(self, key):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("storage unavailable")
        return super().load(key)


class SlowSnapshotStore(MemorySnapshotStore):
    """release가 set될 때까지 load()가 멈춘다."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def load(self, key):
        self.entered.set()
        self.release.wait(5)
        return super().load(key)


class TestSessionRegistry:
    def test_put_and_get(self):
        sessions = SessionRegistry()
        sid = sessions.create_session()

        assert sessions.get(sid, "user") is None
        sessions.put(sid, "user", "someone")
        assert sessions.get(sid, "user") == "someone"

    def test_unknown_session(self):
        sessions = SessionRegistry()
        assert sessions.get_session("missing") is None
        assert sessions.get("missing", "user", "default") == "default"

    def test_expired_sessions_are_dropped(self):
        sessions = SessionRegistry(ttl=-1)
        sessions.create_session()
        sessions.create_session()
        assert sessions.cleanup_expired() == 2

        sid = sessions.create_session()
        assert sessions.get_session(sid) is None


@pytest.fixture
def registry(make_session):
    return AttemptRegistry(lambda test_id, user: make_session(test_id, user), start_timers=False)


class TestAttemptRegistry:
    def test_open_loads_and_reuses(self, registry, user):
        first = registry.open(user, "flat-1")
        assert first.state == SessionState.ACTIVE

        assert registry.open(user, "flat-1") is first
        assert registry.get(user.user_id, "flat-1") is first
        assert registry.get("other", "flat-1") is None

    def test_reopen_after_submission_starts_new_attempt(self, registry, user):
        first = registry.open(user, "flat-1")
        first.submit()

        second = registry.open(user, "flat-1")
        assert second is not first
        assert second.state == SessionState.ACTIVE
        assert not second.resumed

    def test_unknown_test_propagates(self, registry, user):
        with pytest.raises(DefinitionNotFound):
            registry.open(user, "nope")
        assert registry.get(user.user_id, "nope") is None

    def test_undecodable_snapshot_opens_fresh(self, make_session, user, tmp_path):
        (tmp_path / "attempt_flat-1.json").write_bytes(b"\xff\xfe\x00garbage")
        store = FileSnapshotStore(str(tmp_path))
        registry = AttemptRegistry(
            lambda test_id, u: make_session(test_id, u, snapshot_store=store), start_timers=False
        )

        attempt = registry.open(user, "flat-1")
        assert attempt.state == SessionState.ACTIVE
        assert registry.open(user, "flat-1") is attempt

    def test_failed_load_is_not_kept(self, make_session, user):
        store = FailingOnceSnapshotStore()
        registry = AttemptRegistry(
            lambda test_id, u: make_session(test_id, u, snapshot_store=store), start_timers=False
        )

        with pytest.raises(RuntimeError):
            registry.open(user, "flat-1")
        assert registry.get(user.user_id, "flat-1") is None

        attempt = registry.open(user, "flat-1")
        assert attempt.state == SessionState.ACTIVE

    def test_concurrent_open_waits_for_first_load(self, make_session, user):
        store = SlowSnapshotStore()
        registry = AttemptRegistry(
            lambda test_id, u: make_session(test_id, u, snapshot_store=store), start_timers=False
        )
        results = []

        def _open():
            attempt = registry.open(user, "flat-1")
            results.append((attempt, attempt.state))

        first = threading.Thread(target=_open)
        first.start()
        assert store.entered.wait(5)

        second = threading.Thread(target=_open)
        second.start()
        second.join(0.2)
        assert results == []

        store.release.set()
        first.join(5)
        second.join(5)

        assert len(results) == 2
        assert results[0][0] is results[1][0]
        assert [state for _, state in results] == [SessionState.ACTIVE, SessionState.ACTIVE]

    def test_cleanup_only_removes_finished(self, make_session, user):
        registry = AttemptRegistry(
            lambda test_id, u: make_session(test_id, u), start_timers=False, ttl=-1
        )
        done = registry.open(user, "flat-1")
        done.submit()
        registry.open(user, "sec-1")

        assert registry.cleanup_finished() == 1
        assert registry.get(user.user_id, "flat-1") is None
        assert registry.get(user.user_id, "sec-1") is not None

    def test_timer_started_for_running_attempt(self, make_session, user):
        registry = AttemptRegistry(lambda test_id, u: make_session(test_id, u))
        attempt = registry.open(user, "flat-1")
        timer = registry._timers[(user.user_id, "flat-1")]
        try:
            assert timer.alive
            assert timer.session is attempt
        finally:
            timer.stop()
