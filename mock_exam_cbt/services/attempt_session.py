"""
services/attempt_session.py

응시 세션 상태 머신.

    LOADING ─┬─> FRESH ───┐
             ├─> RESUMED ─┴─> ACTIVE ─> SUBMITTING ─> SUBMITTED
             └─> NOT_FOUND

  - ACTIVE 상태에서만 답안 입력 / 이동 / 타이머 감소가 일어난다.
  - 모든 변경은 세션 하나의 RLock을 거친다 (타이머 스레드와 요청 스레드 직렬화).
  - 제출은 single-flight: 진행 중인 제출이 있으면 두 번째 호출은 무시된다.
  - 원격 저장은 락 밖에서 수행하므로 제출 중에도 타이머는 계속 줄어든다.
  - 스냅샷은 ACTIVE 상태에서만 기록되므로 SUBMITTING 진입과 동시에 주기 저장이 멈춘다.

시각은 now_millis(epoch millis) 주입으로 받는다. 테스트에서 고정 시계를 쓴다.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Union

from pydantic import ValidationError

from config import PERSIST_INTERVAL_SECONDS
from mock_exam_cbt.models.attempt_record import UserIdentity
from mock_exam_cbt.models.question_model import OPTION_COUNT, ExamDefinition, Question
from mock_exam_cbt.models.session_state import (
    MARKED_STATUSES,
    AttemptSnapshot,
    FlatAnswers,
    Position,
    QuestionStatus,
    SectionalAnswers,
    SessionState,
    empty_answers,
    with_status,
)
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.catalog import ExamCatalog
from mock_exam_cbt.services.errors import (
    DefinitionNotFound,
    InvalidLocalSnapshot,
    SessionNotActive,
    SubmissionFailed,
)
from mock_exam_cbt.services.question_order import display_order
from mock_exam_cbt.services.snapshot_store import SnapshotStore, snapshot_key
from mock_exam_cbt.services.submission import build_attempt_record

logger = logging.getLogger(__name__)

LAST_QUESTION_NOTICE = "마지막 문제입니다. 준비가 되면 제출하세요."
FIRST_QUESTION_NOTICE = "첫 번째 문제입니다."
TIME_UP_NOTICE = "시험 시간이 종료되었습니다. 제출을 다시 시도해 주세요."


def _wall_clock_millis() -> int:
    return int(time.time() * 1000)


class AttemptSession:
    def __init__(
        self,
        test_id: str,
        user: UserIdentity,
        catalog: ExamCatalog,
        attempt_store: AttemptStore,
        snapshot_store: SnapshotStore,
        now_millis: Callable[[], int] = _wall_clock_millis,
        persist_interval: int = PERSIST_INTERVAL_SECONDS,
    ):
        self.test_id = test_id
        self.user = user
        self.catalog = catalog
        self.attempt_store = attempt_store
        self.snapshot_store = snapshot_store
        self.now_millis = now_millis
        self.persist_interval = persist_interval

        self._lock = threading.RLock()
        self._submitting = False
        self._ticks_since_persist = 0

        self.state = SessionState.LOADING
        self.definition: Optional[ExamDefinition] = None
        self.resumed = False
        self.started_at = 0
        self.shuffle_seed = 0
        self.order: List[List[int]] = []
        self.answers: Optional[Union[FlatAnswers, SectionalAnswers]] = None
        self.statuses: List[List[QuestionStatus]] = []
        self.current = Position()
        self.seconds_remaining = 0
        self.time_up = False
        self.notice: Optional[str] = None
        self.last_error: Optional[str] = None
        self.record_id: Optional[str] = None
        self.auto_submitted = False

    @property
    def key(self) -> str:
        return snapshot_key(self.test_id)

    @property
    def is_running(self) -> bool:
        """타이머가 돌아야 하는 상태인지."""
        return self.state in (SessionState.ACTIVE, SessionState.SUBMITTING)

    # ── 진입 ────────────────────────────────────────────────────────────────

    def load(self) -> SessionState:
        """
        시험 정의를 읽고 스냅샷이 있으면 복원, 없으면 새로 시작한다.

        복원 시 남은 시간은 저장된 값이 아니라 started_at 기준으로 다시 계산한다.
        남은 시간이 0이면 ACTIVE를 거치지 않고 바로 자동 제출한다.

        Raises:
            DefinitionNotFound: 시험이 없음 (세션은 NOT_FOUND로 종료).
        """
        with self._lock:
            if self.state != SessionState.LOADING:
                return self.state
            try:
                definition = self.catalog.get(self.test_id)
            except DefinitionNotFound:
                self.state = SessionState.NOT_FOUND
                logger.warning(f"시험 정의 없음: {self.test_id}")
                raise
            self.definition = definition

            snapshot = self._read_snapshot(definition)
            if snapshot is None:
                self._start_fresh(definition)
                return self.state
            self._restore(definition, snapshot)
            if not self.time_up:
                return self.state

        logger.info(f"복원 시점에 시간 종료 - 자동 제출: {self.test_id} ({self.user.user_id})")
        self.submit(auto=True)
        return self.state

    def _read_snapshot(self, definition: ExamDefinition) -> Optional[AttemptSnapshot]:
        try:
            raw = self.snapshot_store.load(self.key)
            if raw is None:
                return None
            snapshot = self._parse_snapshot(raw, definition)
        except OSError as e:
            logger.warning(f"스냅샷 읽기 실패 - {self.key}: {e}")
            return None
        except InvalidLocalSnapshot as e:
            logger.warning(f"스냅샷 무시 - {self.key}: {e}")
            return None

        if self._already_submitted(snapshot):
            # 제출 후 스냅샷 삭제에 실패해 남은 경우
            logger.warning(f"이미 제출된 응시의 스냅샷 - 새로 시작: {self.key}")
            try:
                self.snapshot_store.delete(self.key)
            except OSError as e:
                logger.warning(f"스냅샷 삭제 실패 - {self.key}: {e}")
            return None
        return snapshot

    def _already_submitted(self, snapshot: AttemptSnapshot) -> bool:
        return any(
            r.user_id == self.user.user_id and r.started_at == snapshot.started_at
            for r in self.attempt_store.for_test(self.test_id)
        )

    def _parse_snapshot(self, raw: str, definition: ExamDefinition) -> AttemptSnapshot:
        try:
            snapshot = AttemptSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidLocalSnapshot(f"스냅샷 형식 오류: {e.error_count()}건") from e
        if snapshot.test_id != definition.id:
            raise InvalidLocalSnapshot(f"다른 시험의 스냅샷입니다: {snapshot.test_id}")
        if not snapshot.matches(definition):
            raise InvalidLocalSnapshot("스냅샷 구조가 시험 구조와 다릅니다.")
        return snapshot

    def _start_fresh(self, definition: ExamDefinition) -> None:
        now = self.now_millis()
        self.started_at = now
        self.shuffle_seed = now
        self.order = display_order(definition, self.shuffle_seed)
        self.answers = empty_answers(definition)
        self.statuses = [[QuestionStatus.NOT_VISITED] * len(row) for row in definition.rows()]
        self.current = self._first_position()
        self.seconds_remaining = definition.planned_duration_seconds
        self.state = SessionState.FRESH
        self.persist()
        self.state = SessionState.ACTIVE
        logger.info(f"새 응시 시작: {self.test_id} ({self.user.user_id}), {self.seconds_remaining}초")

    def _restore(self, definition: ExamDefinition, snapshot: AttemptSnapshot) -> None:
        planned = definition.planned_duration_seconds
        elapsed = (self.now_millis() - snapshot.started_at) // 1000
        self.started_at = snapshot.started_at
        self.shuffle_seed = snapshot.shuffle_seed
        self.order = display_order(definition, self.shuffle_seed)
        self.answers = snapshot.answers
        self.statuses = snapshot.statuses
        self.current = snapshot.current if self._is_valid(snapshot.current) else self._first_position()
        self.seconds_remaining = min(planned, max(0, planned - elapsed))
        self.resumed = True
        self.state = SessionState.RESUMED
        if self.seconds_remaining == 0:
            self.time_up = True
            return
        self.state = SessionState.ACTIVE
        logger.info(f"응시 복원: {self.test_id} ({self.user.user_id}), 남은 시간 {self.seconds_remaining}초")

    # ── 위치 계산 ───────────────────────────────────────────────────────────

    def _positions(self) -> List[Position]:
        """표시 순서대로 나열한 전체 위치 (빈 섹션은 자동으로 건너뜀)."""
        return [
            Position(section_index=si, question_index=di)
            for si, row in enumerate(self.order)
            for di in range(len(row))
        ]

    def _first_position(self) -> Position:
        positions = self._positions()
        return positions[0] if positions else Position()

    def _is_valid(self, position: Position) -> bool:
        return (
            position.section_index < len(self.order)
            and position.question_index < len(self.order[position.section_index])
        )

    def _storage_index(self, position: Optional[Position] = None) -> tuple[int, int]:
        position = position or self.current
        if not self._is_valid(position):
            raise ValueError("이 시험에는 문제가 없습니다.")
        si = position.section_index
        return si, self.order[si][position.question_index]

    def current_question(self) -> Optional[Question]:
        with self._lock:
            if self.definition is None or not self._is_valid(self.current):
                return None
            si, qi = self._storage_index()
            return self.definition.rows()[si][qi]

    def current_answer(self) -> Optional[int]:
        with self._lock:
            if self.answers is None or not self._is_valid(self.current):
                return None
            return self.answers.get(*self._storage_index())

    def status_at(self, position: Position) -> QuestionStatus:
        with self._lock:
            si, qi = self._storage_index(position)
            return self.statuses[si][qi]

    def palette(self) -> List[tuple[Position, QuestionStatus]]:
        """문제 팔레트: 표시 순서대로 (위치, 상태)."""
        with self._lock:
            return [
                (pos, self.statuses[pos.section_index][self.order[pos.section_index][pos.question_index]])
                for pos in self._positions()
            ]

    @property
    def answered_count(self) -> int:
        with self._lock:
            if self.answers is None:
                return 0
            return sum(1 for row in self.answers.rows() for a in row if a is not None)

    # ── 입력 ────────────────────────────────────────────────────────────────

    def _require_active(self) -> None:
        if self.state != SessionState.ACTIVE or self.time_up:
            raise SessionNotActive(f"입력할 수 없는 상태입니다: {self.state.value}")

    def _set_status(self, si: int, qi: int, status: QuestionStatus) -> None:
        self.statuses = with_status(self.statuses, si, qi, status)

    def select_option(self, option_index: Optional[int]) -> None:
        """현재 문제에 답을 기록. None이면 clear_response()와 같다."""
        if option_index is None:
            self.clear_response()
            return
        with self._lock:
            self._require_active()
            if not 0 <= option_index < OPTION_COUNT:
                raise ValueError(f"보기 인덱스는 0~{OPTION_COUNT - 1} 범위여야 합니다: {option_index}")
            si, qi = self._storage_index()
            self.answers = self.answers.with_answer(si, qi, option_index)
            if self.statuses[si][qi] in MARKED_STATUSES:
                self._set_status(si, qi, QuestionStatus.ANSWERED_AND_MARKED)
            else:
                self._set_status(si, qi, QuestionStatus.ANSWERED)
            self.notice = None

    def clear_response(self) -> None:
        with self._lock:
            self._require_active()
            si, qi = self._storage_index()
            self.answers = self.answers.with_answer(si, qi, None)
            if self.statuses[si][qi] in MARKED_STATUSES:
                self._set_status(si, qi, QuestionStatus.MARKED)
            else:
                self._set_status(si, qi, QuestionStatus.NOT_ANSWERED)

    def mark_for_review(self, advance: bool = True) -> None:
        """
        검토 표시를 토글한다 (답안 상태와 독립).
        advance=True이면 표시 후 다음 문제로 이동한다.
        """
        with self._lock:
            self._require_active()
            si, qi = self._storage_index()
            status = self.statuses[si][qi]
            if status == QuestionStatus.MARKED:
                new_status = QuestionStatus.NOT_ANSWERED
            elif status == QuestionStatus.ANSWERED_AND_MARKED:
                new_status = QuestionStatus.ANSWERED
            elif status == QuestionStatus.ANSWERED:
                new_status = QuestionStatus.ANSWERED_AND_MARKED
            else:
                new_status = QuestionStatus.MARKED
            self._set_status(si, qi, new_status)
            if advance:
                self.next_question()

    def _leave_current(self) -> None:
        si, qi = self._storage_index()
        if self.statuses[si][qi] == QuestionStatus.NOT_VISITED:
            self._set_status(si, qi, QuestionStatus.NOT_ANSWERED)

    def _move_by(self, step: int, boundary_notice: str) -> bool:
        with self._lock:
            self._require_active()
            positions = self._positions()
            try:
                idx = positions.index(self.current)
            except ValueError:
                idx = 0
            target = idx + step
            if not positions or not 0 <= target < len(positions):
                self.notice = boundary_notice
                return False
            self._leave_current()
            self.current = positions[target]
            self.notice = None
            return True

    def next_question(self) -> bool:
        """다음 문제로 이동. 마지막 문제면 이동하지 않고 notice를 남긴 뒤 False."""
        return self._move_by(1, LAST_QUESTION_NOTICE)

    def previous_question(self) -> bool:
        return self._move_by(-1, FIRST_QUESTION_NOTICE)

    def go_to(self, section_index: int, question_index: int) -> None:
        """문제 팔레트에서 특정 위치로 바로 이동 (표시 순서 기준)."""
        target = Position(section_index=section_index, question_index=question_index)
        with self._lock:
            self._require_active()
            if not self._is_valid(target):
                raise ValueError(f"존재하지 않는 문제 위치입니다: {section_index}/{question_index}")
            if target != self.current:
                self._leave_current()
                self.current = target
            self.notice = None

    # ── 타이머 / 저장 ──────────────────────────────────────────────────────

    def tick(self) -> None:
        """
        1초 경과. ACTIVE/SUBMITTING이면 남은 시간을 1 줄인다.

        ACTIVE에서 persist_interval 틱마다 스냅샷을 저장하고,
        0에 도달하면 자동 제출한다. 자동 제출이 실패했으면 다음 틱에서 다시 시도한다.
        """
        with self._lock:
            if not self.is_running:
                return
            if self.seconds_remaining > 0:
                self.seconds_remaining -= 1
            if self.state == SessionState.SUBMITTING:
                return
            if self.seconds_remaining > 0:
                self._ticks_since_persist += 1
                if self._ticks_since_persist >= self.persist_interval:
                    self.persist()
                return
            if not self.time_up:
                logger.info(f"시험 시간 종료 - 자동 제출: {self.test_id} ({self.user.user_id})")
            self.time_up = True
        self.submit(auto=True)

    def _snapshot(self) -> AttemptSnapshot:
        return AttemptSnapshot(
            test_id=self.test_id,
            started_at=self.started_at,
            shuffle_seed=self.shuffle_seed,
            answers=self.answers,
            statuses=self.statuses,
            current=self.current,
            seconds_remaining=self.seconds_remaining,
        )

    def persist(self) -> bool:
        """
        스냅샷을 로컬 저장소에 기록. 쓰기 실패는 치명적이지 않다
        (메모리 상태로 계속 진행하고 다음 주기에 다시 시도).
        """
        with self._lock:
            if self.state not in (SessionState.FRESH, SessionState.ACTIVE):
                return False
            data = self._snapshot().model_dump_json()
            try:
                self.snapshot_store.save(self.key, data)
            except OSError as e:
                logger.warning(f"스냅샷 저장 실패 - {self.key}: {e}")
                return False
            self._ticks_since_persist = 0
            return True

    # ── 제출 ────────────────────────────────────────────────────────────────

    def submit(self, auto: bool = False) -> Optional[str]:
        """
        채점 → 기록 저장 → 스냅샷 삭제 → SUBMITTED.

        Returns:
            저장된 기록 ID. 이미 제출 중이거나 제출할 수 없는 상태면 None.

        Raises:
            SubmissionFailed: 수동 제출의 저장 실패. 스냅샷과 답안은 그대로 남는다.
                              자동 제출 실패는 예외 대신 time_up 상태로 남겨
                              다음 틱에서 재시도한다.
        """
        with self._lock:
            if self._submitting:
                logger.info(f"제출 진행 중 - 중복 요청 무시: {self.test_id}")
                return None
            submittable = self.state == SessionState.ACTIVE or (
                self.state == SessionState.RESUMED and self.time_up
            )
            if not submittable:
                return None
            self._submitting = True
            self.state = SessionState.SUBMITTING
            definition = self.definition
            answers = self.answers
            remaining = self.seconds_remaining

        try:
            record = build_attempt_record(
                definition, self.user, answers, remaining, auto, started_at=self.started_at
            )
            record_id = self.attempt_store.create(record)
        except Exception as e:
            with self._lock:
                self._submitting = False
                self.state = SessionState.ACTIVE
                self.last_error = str(e)
                if auto or self.time_up:
                    self.notice = TIME_UP_NOTICE
            logger.warning(f"제출 실패 ({'자동' if auto else '수동'}) - {self.test_id}: {e}")
            if auto:
                return None
            raise SubmissionFailed("제출에 실패했습니다. 답안은 보존되었습니다. 다시 시도해 주세요.") from e

        with self._lock:
            try:
                self.snapshot_store.delete(self.key)
            except OSError as e:
                logger.warning(f"스냅샷 삭제 실패 - {self.key}: {e}")
            self.record_id = record_id
            self.auto_submitted = auto
            self.last_error = None
            self.notice = None
            self.state = SessionState.SUBMITTED
            self._submitting = False
        logger.info(
            f"제출 완료 ({'자동' if auto else '수동'}): {self.test_id} ({self.user.user_id}) → {record_id}"
        )
        return record_id
