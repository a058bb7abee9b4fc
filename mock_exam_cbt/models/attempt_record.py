"""
models/attempt_record.py

채점 결과 + 제출된 응시 기록 모델.
AttemptRecord는 한 번 저장되면 수정하지 않는다 (frozen).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mock_exam_cbt.models.session_state import AnswersShape


class UserIdentity(BaseModel):
    """외부 인증 제공자가 넘겨주는 사용자 정보. 내용은 해석하지 않는다."""
    user_id: str = Field(..., min_length=1)
    display_name: str = ""


class SectionScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    score: float
    marks: float
    question_count: int


class ScoreResult(BaseModel):
    """
    채점 결과.

    Attributes:
        total_score:    최종 점수. 감점 적용 시 전체 합계만 0점 하한.
        raw_score:      하한 적용 전 점수.
        total_marks:    만점 (모든 문제 배점 합).
        section_scores: 섹션형 시험에서만 채워짐 (섹션 순서).
    """

    model_config = ConfigDict(frozen=True)

    total_score: float
    raw_score: float
    total_marks: float
    total_questions: int
    correct_count: int
    wrong_count: int
    skipped_count: int
    section_scores: List[SectionScore] = Field(default_factory=list)


class AttemptRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(None, description="저장소가 발급하는 기록 ID")
    user_id: str
    username: str = ""
    test_id: str
    test_title: str = ""
    has_sections: bool = False
    answers: AnswersShape
    section_scores: List[SectionScore] = Field(default_factory=list)
    total_score: float
    total_marks: float
    total_questions: int
    correct_count: int = 0
    wrong_count: int = 0
    skipped_count: int = 0
    time_taken_seconds: int = Field(..., ge=0)
    started_at: int = Field(0, description="응시 시작 시각 (epoch millis). 같은 응시의 중복 제출 판별용")
    submitted_at: Optional[datetime] = Field(None, description="저장소(서버) 기준 제출 시각")
    auto_submitted: bool = False
