"""
services/submission.py

제출 파이프라인의 순수 부분: 최종 답안 → 채점 → AttemptRecord 조립.
저장소 쓰기/스냅샷 삭제는 AttemptSession.submit()이 담당한다.
"""

from typing import Union

from mock_exam_cbt.models.attempt_record import AttemptRecord, UserIdentity
from mock_exam_cbt.models.question_model import ExamDefinition
from mock_exam_cbt.models.session_state import FlatAnswers, SectionalAnswers
from mock_exam_cbt.services.exam_service import calculate_score


def time_taken_seconds(planned_seconds: int, seconds_remaining: int) -> int:
    """
    소요 시간 = 계획 시간 - 제출 시점 남은 시간, [0, planned] 범위로 보정.
    벽시계 경과 시간이 아니라 남은 시간 기준이다.
    """
    return min(planned_seconds, max(0, planned_seconds - seconds_remaining))


def build_attempt_record(
    definition: ExamDefinition,
    user: UserIdentity,
    answers: Union[FlatAnswers, SectionalAnswers],
    seconds_remaining: int,
    auto_submitted: bool = False,
    started_at: int = 0,
) -> AttemptRecord:
    """
    메모리에 있는 최종 답안으로 응시 기록을 만든다.
    id / submitted_at은 저장소가 채운다.
    """
    result = calculate_score(definition, answers)
    return AttemptRecord(
        user_id=user.user_id,
        username=user.display_name or user.user_id,
        test_id=definition.id,
        test_title=definition.title,
        has_sections=definition.has_sections,
        answers=answers,
        section_scores=result.section_scores,
        total_score=result.total_score,
        total_marks=result.total_marks,
        total_questions=result.total_questions,
        correct_count=result.correct_count,
        wrong_count=result.wrong_count,
        skipped_count=result.skipped_count,
        time_taken_seconds=time_taken_seconds(
            definition.planned_duration_seconds, seconds_remaining
        ),
        started_at=started_at,
        auto_submitted=auto_submitted,
    )
