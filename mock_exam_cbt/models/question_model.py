"""
models/question_model.py

모의고사 / 퀴즈 정의 모델 (단일 목록형 + 섹션형).
Pydantic v2 적용.

검증은 두 단계로 나뉜다.
  - 출제(authoring) 단계: context={"authoring": True} 로 검증하면
    보기 4개, 정답 인덱스 0~3, 배점 > 0 을 강제한다.
  - 응시 단계: 저장소에서 읽은 문서는 느슨하게 받아들인다.
    형식이 깨진 문제 하나 때문에 진행 중인 시험이 중단되면 안 되므로
    채점 시 항상 오답으로 처리한다 (Question.is_well_formed 참고).
"""

from typing import List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from config import DEFAULT_DURATION_SECONDS

OPTION_COUNT = 4


def _is_authoring(info: ValidationInfo) -> bool:
    return bool(info.context and info.context.get("authoring"))


class Question(BaseModel):
    """
    4지선다 객관식 문제.
    원본 문서 키(q, ans, solution)도 그대로 받아들인다.
    """
    text: str = Field(
        "",
        validation_alias=AliasChoices("text", "q"),
        description="문제 본문"
    )
    options: List[str] = Field(
        default_factory=list,
        description="보기 리스트 (정확히 4개)"
    )
    correct_option_index: int = Field(
        0,
        validation_alias=AliasChoices("correct_option_index", "ans"),
        description="정답 보기 인덱스 (0-based, 0~3)"
    )
    marks: float = Field(
        1,
        description="배점 (기본 1점)"
    )
    solution_text: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("solution_text", "solution"),
        description="해설 (없으면 None)"
    )

    @field_validator("marks", mode="before")
    @classmethod
    def default_empty_marks(cls, v):
        # 배점이 비어 있거나 0이면 1점
        return v or 1

    @field_validator("options")
    @classmethod
    def validate_option_count(cls, v: List[str], info: ValidationInfo) -> List[str]:
        if _is_authoring(info) and len(v) != OPTION_COUNT:
            raise ValueError(f"보기(options)는 정확히 {OPTION_COUNT}개여야 합니다 (현재 {len(v)}개).")
        return v

    @field_validator("marks")
    @classmethod
    def validate_marks(cls, v: float, info: ValidationInfo) -> float:
        if _is_authoring(info) and v <= 0:
            raise ValueError("배점(marks)은 0보다 커야 합니다.")
        return v

    @model_validator(mode="after")
    def validate_correct_index(self, info: ValidationInfo) -> "Question":
        if _is_authoring(info) and not 0 <= self.correct_option_index < OPTION_COUNT:
            raise ValueError(
                f"정답 인덱스({self.correct_option_index})는 0~{OPTION_COUNT - 1} 범위여야 합니다."
            )
        return self

    @property
    def is_well_formed(self) -> bool:
        """보기 4개 + 정답 인덱스가 범위 안이면 True."""
        return (
            len(self.options) == OPTION_COUNT
            and 0 <= self.correct_option_index < OPTION_COUNT
        )


class Section(BaseModel):
    name: str = Field("", description="섹션 이름 (비어 있으면 'Section N')")
    questions: List[Question] = Field(default_factory=list)


class ExamDefinition(BaseModel):
    """
    응시 대상 시험 정의. 한 번이라도 응시된 정의는 수정하지 않는다.

    타이머 모델은 두 가지를 지원한다.
      - duration_seconds:     시험 전체 제한 시간 (기본 모드)
      - per_question_seconds: 문제당 제한 시간 × 전체 문제 수
    둘 다 없으면 config.DEFAULT_DURATION_SECONDS 적용.
    원본 관리자 폼이 저장한 duration(분 단위)도 받아들인다.
    """
    id: str = Field(..., min_length=1, description="시험 식별자")
    title: str = Field("", description="시험 제목")
    description: str = Field("", description="시험 설명")
    difficulty: str = Field("Medium", description="난이도 표시용")
    duration_seconds: Optional[int] = Field(
        None,
        gt=0,
        description="시험 전체 제한 시간 (초)"
    )
    per_question_seconds: Optional[int] = Field(
        None,
        gt=0,
        description="문제당 제한 시간 (초)"
    )
    has_sections: bool = Field(
        False,
        validation_alias=AliasChoices("has_sections", "hasSections"),
        description="True이면 sections, False이면 questions 사용"
    )
    sections: List[Section] = Field(default_factory=list)
    questions: List[Question] = Field(default_factory=list)
    shuffle: bool = Field(False, description="문제 순서 섞기 여부")
    negative_mark_per_wrong: float = Field(
        0.0,
        ge=0,
        description="오답 1개당 감점 (0이면 감점 없음)"
    )

    @model_validator(mode="before")
    @classmethod
    def convert_minutes(cls, data):
        if isinstance(data, dict) and "duration" in data and not data.get("duration_seconds"):
            data = dict(data)
            minutes = data.pop("duration")
            if minutes:
                data["duration_seconds"] = int(float(minutes) * 60)
        return data

    @model_validator(mode="after")
    def fill_section_names(self, info: ValidationInfo) -> "ExamDefinition":
        if _is_authoring(info) and not self.title.strip():
            raise ValueError("시험 제목(title)은 필수입니다.")
        for si, section in enumerate(self.sections):
            if not section.name:
                section.name = f"Section {si + 1}"
        return self

    def rows(self) -> List[List[Question]]:
        """채점/세션이 공통으로 쓰는 행 구조. 단일 목록형은 행 1개."""
        if self.has_sections:
            return [s.questions for s in self.sections]
        return [self.questions]

    @property
    def total_questions(self) -> int:
        return sum(len(row) for row in self.rows())

    @property
    def planned_duration_seconds(self) -> int:
        if self.duration_seconds:
            return self.duration_seconds
        if self.per_question_seconds:
            return self.per_question_seconds * self.total_questions
        return DEFAULT_DURATION_SECONDS
