"""
공통 픽스처: 고정 시계, 인메모리 저장소, 샘플 시험 정의.
"""

import pytest

from mock_exam_cbt.models.attempt_record import UserIdentity
from mock_exam_cbt.models.question_model import ExamDefinition, Question, Section
from mock_exam_cbt.services.attempt_session import AttemptSession
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.catalog import ExamCatalog
from mock_exam_cbt.services.snapshot_store import MemorySnapshotStore

START_MILLIS = 1_700_000_000_000


class FakeClock:
    """epoch millis를 돌려주는 수동 시계."""

    def __init__(self, start: int = START_MILLIS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def make_question(correct: int, marks: float = 1, text: str = "Q") -> Question:
    return Question(
        text=text,
        options=["A", "B", "C", "D"],
        correct_option_index=correct,
        marks=marks,
        solution_text=f"정답은 {correct}번",
    )


@pytest.fixture
def flat_exam() -> ExamDefinition:
    # marks [1, 1, 2], 정답 [1, 0, 2]
    return ExamDefinition(
        id="flat-1",
        title="Flat Mock",
        duration_seconds=1800,
        questions=[
            make_question(1, text="Q1"),
            make_question(0, text="Q2"),
            make_question(2, marks=2, text="Q3"),
        ],
    )


@pytest.fixture
def sectional_exam() -> ExamDefinition:
    # A: 2문항(배점 1, 정답 [0, 1]) / B: 1문항(배점 2, 정답 0)
    return ExamDefinition(
        id="sec-1",
        title="Sectional Mock",
        duration_seconds=1800,
        has_sections=True,
        sections=[
            Section(name="A", questions=[make_question(0, text="A1"), make_question(1, text="A2")]),
            Section(name="B", questions=[make_question(0, marks=2, text="B1")]),
        ],
    )


@pytest.fixture
def gapped_exam() -> ExamDefinition:
    # 가운데 빈 섹션이 있는 시험
    return ExamDefinition(
        id="gap-1",
        title="Gapped Mock",
        duration_seconds=600,
        has_sections=True,
        sections=[
            Section(name="First", questions=[make_question(0), make_question(1)]),
            Section(name="Empty", questions=[]),
            Section(name="Last", questions=[make_question(2)]),
        ],
    )


@pytest.fixture
def short_exam() -> ExamDefinition:
    return ExamDefinition(
        id="short-1",
        title="Three Second Quiz",
        duration_seconds=3,
        questions=[make_question(0), make_question(1)],
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user() -> UserIdentity:
    return UserIdentity(user_id="u-1", display_name="Asha")


@pytest.fixture
def catalog(flat_exam, sectional_exam, gapped_exam, short_exam) -> ExamCatalog:
    return ExamCatalog(definitions=[flat_exam, sectional_exam, gapped_exam, short_exam])


@pytest.fixture
def attempt_store() -> AttemptStore:
    return AttemptStore()


@pytest.fixture
def snapshot_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def make_session(catalog, attempt_store, snapshot_store, clock, user):
    """AttemptSession 팩토리. 인자를 넘기면 해당 협력 객체만 교체."""

    default_user = user

    def _make(test_id: str = "flat-1", user: UserIdentity = None, **overrides) -> AttemptSession:
        kwargs = {
            "catalog": catalog,
            "attempt_store": attempt_store,
            "snapshot_store": snapshot_store,
            "now_millis": clock,
            "persist_interval": 5,
        }
        kwargs.update(overrides)
        return AttemptSession(test_id, user or default_user, **kwargs)

    return _make
