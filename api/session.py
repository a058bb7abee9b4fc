"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반) + 응시 세션 레지스트리

SessionRegistry:
  각 브라우저에 UUID 세션 ID를 발급하고, 세션별로 독립된 상태(로그인 사용자)를 유지.
  TTL(기본 1시간) 경과 시 자동 만료.

AttemptRegistry:
  (user_id, test_id) 별 AttemptSession + SessionTimer 보관.
  브라우저 세션이 바뀌어도 같은 사용자의 진행 중 응시는 그대로 이어진다.

두 레지스트리 모두 create_app()에서 생성되어 app.state에 주입된다 (모듈 전역 상태 없음).
"""

import threading
import time
import uuid
from typing import Any, Callable, Optional

from config import SESSION_TTL
from mock_exam_cbt.models.attempt_record import UserIdentity
from mock_exam_cbt.models.session_state import SessionState
from mock_exam_cbt.services.attempt_session import AttemptSession
from mock_exam_cbt.services.errors import DefinitionNotFound
from mock_exam_cbt.services.session_timer import SessionTimer


def _new_state() -> dict[str, Any]:
    return {
        "user": None,
    }


class SessionRegistry:
    def __init__(self, ttl: int = SESSION_TTL):
        self.ttl = ttl
        self._lock = threading.Lock()
        self._sessions: dict[str, dict[str, Any]] = {}
        self._timestamps: dict[str, float] = {}

    def create_session(self) -> str:
        """새 세션을 생성하고 세션 ID를 반환."""
        sid = uuid.uuid4().hex
        with self._lock:
            self._sessions[sid] = _new_state()
            self._timestamps[sid] = time.time()
        return sid

    def get_session(self, sid: str) -> dict[str, Any] | None:
        """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
        with self._lock:
            if sid not in self._sessions:
                return None
            if time.time() - self._timestamps[sid] > self.ttl:
                del self._sessions[sid]
                del self._timestamps[sid]
                return None
            self._timestamps[sid] = time.time()  # 접근 시 갱신
            return self._sessions[sid]

    def get(self, sid: str, key: str, default=None):
        """세션에서 값 읽기."""
        session = self.get_session(sid)
        if session is None:
            return default
        return session.get(key, default)

    def put(self, sid: str, key: str, value) -> None:
        """세션에 값 쓰기."""
        with self._lock:
            if sid in self._sessions:
                self._sessions[sid][key] = value
                self._timestamps[sid] = time.time()

    def cleanup_expired(self) -> int:
        """만료된 세션을 정리. 제거된 수 반환."""
        now = time.time()
        removed = 0
        with self._lock:
            expired = [sid for sid, ts in self._timestamps.items() if now - ts > self.ttl]
            for sid in expired:
                del self._sessions[sid]
                del self._timestamps[sid]
                removed += 1
        return removed


class AttemptRegistry:
    def __init__(
        self,
        session_factory: Callable[[str, UserIdentity], AttemptSession],
        start_timers: bool = True,
        ttl: int = SESSION_TTL,
    ):
        self.session_factory = session_factory
        self.start_timers = start_timers
        self.ttl = ttl
        self._lock = threading.Lock()
        self._attempts: dict[tuple[str, str], AttemptSession] = {}
        self._timers: dict[tuple[str, str], SessionTimer] = {}
        self._timestamps: dict[tuple[str, str], float] = {}

    def open(self, user: UserIdentity, test_id: str) -> AttemptSession:
        """
        진행 중인 응시가 있으면 그대로 반환, 없거나 이미 끝났으면 새 세션을 만들어 load().

        기존 세션도 load()를 거친다. load()는 세션 락 안에서 한 번만 실제로 읽으므로
        동시에 들어온 요청은 첫 load()가 끝날 때까지 기다렸다가 같은 세션을 받는다.
        load()가 예외를 올리면 세션을 레지스트리에서 빼고 그대로 전달한다
        (다음 open()은 새 세션으로 다시 시도).

        Raises:
            DefinitionNotFound: 시험이 없음.
        """
        key = (user.user_id, test_id)
        with self._lock:
            attempt = self._attempts.get(key)
            created = attempt is None or attempt.state in (
                SessionState.SUBMITTED, SessionState.NOT_FOUND
            )
            if created:
                attempt = self.session_factory(test_id, user)
                self._attempts[key] = attempt
            self._timestamps[key] = time.time()

        try:
            state = attempt.load()
        except Exception:
            self._evict(key, attempt)
            raise
        if state == SessionState.NOT_FOUND:
            self._evict(key, attempt)
            raise DefinitionNotFound(test_id)

        if created and attempt.is_running and self.start_timers:
            timer = SessionTimer(attempt)
            with self._lock:
                self._timers[key] = timer
            timer.start()
        return attempt

    def _evict(self, key: tuple[str, str], attempt: AttemptSession) -> None:
        with self._lock:
            if self._attempts.get(key) is attempt:
                del self._attempts[key]
                del self._timestamps[key]

    def get(self, user_id: str, test_id: str) -> Optional[AttemptSession]:
        key = (user_id, test_id)
        with self._lock:
            attempt = self._attempts.get(key)
            if attempt is not None:
                self._timestamps[key] = time.time()
            return attempt

    def cleanup_finished(self) -> int:
        """제출/종료된 지 TTL이 지난 응시 세션을 정리. 제거된 수 반환."""
        now = time.time()
        removed = 0
        with self._lock:
            for key, attempt in list(self._attempts.items()):
                if attempt.is_running or now - self._timestamps[key] <= self.ttl:
                    continue
                timer = self._timers.pop(key, None)
                if timer is not None:
                    timer.stop()
                del self._attempts[key]
                del self._timestamps[key]
                removed += 1
        return removed
