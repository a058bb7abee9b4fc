"""
models/session_state.py

응시 세션 상태 모델 (OMR 카드).
Pydantic BaseModel 기반 — 스냅샷 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.

답안 구조는 태그 유니온으로 표현한다.
  - FlatAnswers:      단일 목록형 시험. [선택 인덱스 | None, ...]
  - SectionalAnswers: 섹션형 시험. [[선택 인덱스 | None, ...], ...] (섹션 순서)
인덱스는 모두 '저장 순서' 기준이며 화면 표시 순서(셔플)와 무관하다.
"""

from enum import Enum, IntEnum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from mock_exam_cbt.models.question_model import ExamDefinition


class SessionState(str, Enum):
    LOADING = "loading"
    FRESH = "fresh"
    RESUMED = "resumed"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    NOT_FOUND = "not_found"


class QuestionStatus(IntEnum):
    """문제 팔레트 상태 코드."""
    NOT_VISITED = 0
    NOT_ANSWERED = 1
    ANSWERED = 2
    MARKED = 3
    ANSWERED_AND_MARKED = 4


MARKED_STATUSES = (QuestionStatus.MARKED, QuestionStatus.ANSWERED_AND_MARKED)


class Position(BaseModel):
    """현재 위치. question_index는 섹션 내 '표시 순서' 인덱스."""
    section_index: int = Field(default=0, ge=0)
    question_index: int = Field(default=0, ge=0)


class FlatAnswers(BaseModel):
    kind: Literal["flat"] = "flat"
    answers: List[Optional[int]] = Field(default_factory=list)

    def rows(self) -> List[List[Optional[int]]]:
        return [self.answers]

    def get(self, section_index: int, question_index: int) -> Optional[int]:
        if section_index != 0 or not 0 <= question_index < len(self.answers):
            return None
        return self.answers[question_index]

    def with_answer(
        self, section_index: int, question_index: int, value: Optional[int]
    ) -> "FlatAnswers":
        answers = list(self.answers)
        answers[question_index] = value
        return FlatAnswers(answers=answers)


class SectionalAnswers(BaseModel):
    kind: Literal["sectional"] = "sectional"
    sections: List[List[Optional[int]]] = Field(default_factory=list)

    def rows(self) -> List[List[Optional[int]]]:
        return self.sections

    def get(self, section_index: int, question_index: int) -> Optional[int]:
        if not 0 <= section_index < len(self.sections):
            return None
        row = self.sections[section_index]
        if not 0 <= question_index < len(row):
            return None
        return row[question_index]

    def with_answer(
        self, section_index: int, question_index: int, value: Optional[int]
    ) -> "SectionalAnswers":
        sections = list(self.sections)
        row = list(sections[section_index])
        row[question_index] = value
        sections[section_index] = row
        return SectionalAnswers(sections=sections)


AnswersShape = Annotated[Union[FlatAnswers, SectionalAnswers], Field(discriminator="kind")]


def empty_answers(definition: ExamDefinition) -> Union[FlatAnswers, SectionalAnswers]:
    """시험 구조에 맞는 전부 None 답안지."""
    if definition.has_sections:
        return SectionalAnswers(sections=[[None] * len(s.questions) for s in definition.sections])
    return FlatAnswers(answers=[None] * len(definition.questions))


def with_status(
    statuses: List[List[QuestionStatus]],
    section_index: int,
    question_index: int,
    status: QuestionStatus,
) -> List[List[QuestionStatus]]:
    """해당 칸만 바꾼 새 상태표를 반환 (바뀐 행만 복사)."""
    rows = list(statuses)
    row = list(rows[section_index])
    row[question_index] = status
    rows[section_index] = row
    return rows


class AttemptSnapshot(BaseModel):
    """
    로컬 저장소에 주기적으로 기록되는 응시 세션 스냅샷.

    Attributes:
        test_id:           시험 식별자. 복원 시 일치 여부를 검증한다.
        started_at:        시험 시작 시각 (epoch millis).
        shuffle_seed:      문제 순서 시드. 복원 시 동일한 순서를 재현한다.
        answers:           답안지 (저장 순서 기준).
        statuses:          문제별 팔레트 상태 (행 = 섹션).
        current:           현재 위치 (표시 순서 기준).
        seconds_remaining: 기록 시점의 남은 시간. 복원 시에는 사용하지 않고
                           started_at 기준으로 다시 계산한다.
    """

    test_id: str
    started_at: int
    shuffle_seed: int
    answers: AnswersShape
    statuses: List[List[QuestionStatus]]
    current: Position = Field(default_factory=Position)
    seconds_remaining: int = Field(default=0, ge=0)

    def matches(self, definition: ExamDefinition) -> bool:
        """스냅샷의 답안/상태 구조가 시험 구조와 일치하면 True."""
        expected = [len(row) for row in definition.rows()]
        expected_kind = "sectional" if definition.has_sections else "flat"
        return (
            self.test_id == definition.id
            and self.answers.kind == expected_kind
            and [len(row) for row in self.answers.rows()] == expected
            and [len(row) for row in self.statuses] == expected
        )
