"""
services/session_timer.py

응시 세션 1초 타이머. 세션이 ACTIVE/SUBMITTING인 동안 매초 tick()을 호출하는
데몬 스레드. 제출이 끝나면 스스로 종료하고, stop()으로 언제든 취소할 수 있다.
"""

import logging
import threading
from typing import Optional

from mock_exam_cbt.services.attempt_session import AttemptSession

logger = logging.getLogger(__name__)


class SessionTimer:
    def __init__(self, session: AttemptSession, interval: float = 1.0):
        self.session = session
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.alive:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"attempt-timer-{self.session.test_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if not self.session.is_running:
                break
            try:
                self.session.tick()
            except Exception:
                logger.exception(f"타이머 오류 - {self.session.test_id}")
                break
        logger.debug(f"타이머 종료: {self.session.test_id} ({self.session.state.value})")
