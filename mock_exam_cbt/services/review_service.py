"""
services/review_service.py

제출된 응시 기록에 대한 읽기 전용 조회: 리뷰(해설), 리더보드, 응시 이력.
"""

from datetime import datetime, timezone
from typing import Dict, List

from config import LEADERBOARD_LIMIT
from mock_exam_cbt.models.attempt_record import AttemptRecord
from mock_exam_cbt.models.question_model import ExamDefinition
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.exam_service import accuracy, calculate_score, question_outcomes

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def format_duration(seconds: int) -> str:
    """초 → 'MM:SS'."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def build_review(record: AttemptRecord, definition: ExamDefinition) -> Dict[str, object]:
    """
    리뷰 화면 데이터.

    저장된 점수와 별개로 시험 정의 + 저장된 답안으로 다시 채점하여
    consistent 플래그로 일치 여부를 알려준다.
    """
    recomputed = calculate_score(definition, record.answers)
    return {
        "record": record.model_dump(mode="json"),
        "recomputed": recomputed.model_dump(),
        "consistent": recomputed.total_score == record.total_score,
        "accuracy": accuracy(recomputed),
        "time_taken": format_duration(record.time_taken_seconds),
        "questions": question_outcomes(definition, record.answers),
    }


def leaderboard(
    store: AttemptStore,
    test_id: str,
    limit: int = LEADERBOARD_LIMIT,
) -> List[AttemptRecord]:
    """점수 내림차순, 동점이면 소요 시간이 짧은 순, 그다음 먼저 제출한 순."""
    records = sorted(
        store.for_test(test_id),
        key=lambda r: (-r.total_score, r.time_taken_seconds, r.submitted_at or _EPOCH),
    )
    return records[:limit]


def history(store: AttemptStore, user_id: str) -> List[AttemptRecord]:
    """사용자의 응시 이력, 최근 제출 순."""
    return sorted(
        store.for_user(user_id),
        key=lambda r: r.submitted_at or _EPOCH,
        reverse=True,
    )
