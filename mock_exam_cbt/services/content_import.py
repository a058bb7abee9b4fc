"""
services/content_import.py

출제 단계 가져오기: 시험 정의 / 문제 JSON 배열을 엄격하게 검증한다.
(보기 4개, 정답 인덱스 0~3, 배점 > 0, 제목 필수)

문제 JSON은 관리자 화면의 "Import JSON" 형식을 따른다:
    [{"q": "...", "options": ["", "", "", ""], "ans": 0, "marks": 1, "solution": ""}, ...]
"""

import json
from typing import List, Optional, Union

from pydantic import TypeAdapter, ValidationError

from mock_exam_cbt.models.question_model import ExamDefinition, Question
from mock_exam_cbt.services.errors import MalformedDefinition

AUTHORING = {"authoring": True}

_QUESTION_LIST = TypeAdapter(List[Question])


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "(root)"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def parse_definition(raw: Union[str, bytes, dict]) -> ExamDefinition:
    """시험 정의 전체를 출제 모드로 검증."""
    try:
        if isinstance(raw, dict):
            return ExamDefinition.model_validate(raw, context=AUTHORING)
        return ExamDefinition.model_validate_json(raw, context=AUTHORING)
    except ValidationError as e:
        raise MalformedDefinition(_describe(e)) from e


def import_questions(raw_json: Union[str, bytes, list]) -> List[Question]:
    """문제 JSON 배열을 출제 모드로 검증하여 Question 리스트로 반환."""
    if isinstance(raw_json, list):
        items = raw_json
    else:
        try:
            items = json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise MalformedDefinition(f"JSON 형식이 올바르지 않습니다: {e.msg}") from e
    if not isinstance(items, list):
        raise MalformedDefinition("문제 목록은 JSON 배열이어야 합니다.")
    try:
        return _QUESTION_LIST.validate_python(items, context=AUTHORING)
    except ValidationError as e:
        raise MalformedDefinition(_describe(e)) from e


def add_questions(
    definition: ExamDefinition,
    questions: List[Question],
    section_index: Optional[int] = None,
) -> ExamDefinition:
    """
    문제를 덧붙인 새 정의를 반환한다 (원본은 변경하지 않음).
    섹션형 시험은 section_index가 필수다.
    """
    if not definition.has_sections:
        return definition.model_copy(update={"questions": [*definition.questions, *questions]})

    if section_index is None or not 0 <= section_index < len(definition.sections):
        raise MalformedDefinition(
            f"섹션 인덱스가 올바르지 않습니다 (0~{len(definition.sections) - 1}): {section_index}"
        )
    sections = list(definition.sections)
    target = sections[section_index]
    sections[section_index] = target.model_copy(
        update={"questions": [*target.questions, *questions]}
    )
    return definition.model_copy(update={"sections": sections})
