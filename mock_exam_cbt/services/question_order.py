"""
services/question_order.py

문제 표시 순서 (셔플) 생성.
같은 시드 + 같은 문제 수 → 항상 같은 순서. 세션 복원 시 학생이 보던
순서를 그대로 재현하기 위해 random 모듈 대신 고정된 LCG를 쓴다.
"""

from typing import List

from mock_exam_cbt.models.question_model import ExamDefinition

# Numerical Recipes 32-bit LCG
_LCG_MULTIPLIER = 1664525
_LCG_INCREMENT = 1013904223
_LCG_MODULUS = 2 ** 32


class LinearCongruentialGenerator:
    def __init__(self, seed: int):
        self._state = seed % _LCG_MODULUS

    def next_below(self, bound: int) -> int:
        """[0, bound) 범위의 다음 정수."""
        self._state = (_LCG_MULTIPLIER * self._state + _LCG_INCREMENT) % _LCG_MODULUS
        return self._state % bound


def order(question_count: int, shuffle_enabled: bool, seed: int) -> List[int]:
    """
    표시 순서 → 저장 인덱스 순열을 반환한다.

    셔플이 꺼져 있으면 [0, 1, ..., n-1].
    켜져 있으면 Fisher–Yates: 마지막 인덱스부터 i를 [0, i] 범위의 난수 인덱스와 교환.
    """
    if question_count < 0:
        raise ValueError(f"문제 수는 음수일 수 없습니다: {question_count}")
    indices = list(range(question_count))
    if not shuffle_enabled or question_count < 2:
        return indices

    rng = LinearCongruentialGenerator(seed)
    for i in range(question_count - 1, 0, -1):
        j = rng.next_below(i + 1)
        indices[i], indices[j] = indices[j], indices[i]
    return indices


def display_order(definition: ExamDefinition, seed: int) -> List[List[int]]:
    """
    시험 전체의 표시 순서. 섹션별로 seed + 섹션 인덱스로 독립적으로 섞는다.
    섹션 순서 자체는 섞지 않는다.
    """
    return [
        order(len(questions), definition.shuffle, seed + si)
        for si, questions in enumerate(definition.rows())
    ]
