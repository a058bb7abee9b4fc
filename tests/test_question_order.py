"""
문제 순서(셔플) 테스트
"""

import pytest

from mock_exam_cbt.models.question_model import ExamDefinition, Section
from mock_exam_cbt.services.question_order import LinearCongruentialGenerator, display_order, order

from conftest import make_question


def test_identity_when_shuffle_disabled():
    assert order(5, False, 12345) == [0, 1, 2, 3, 4]


def test_trivial_counts():
    assert order(0, True, 99) == []
    assert order(1, True, 99) == [0]


def test_negative_count_rejected():
    with pytest.raises(ValueError):
        order(-1, True, 1)


def test_same_seed_same_permutation():
    assert order(20, True, 1_700_000_000_000) == order(20, True, 1_700_000_000_000)


def test_result_is_a_permutation():
    for seed in range(10):
        perm = order(12, True, seed)
        assert sorted(perm) == list(range(12))


def test_known_permutation_for_seed_one():
    # state 1 → 1015568748 (3으로 나누어떨어짐 → i=2와 0 교환) → 다음 상태 홀수 (i=1 유지)
    assert order(3, True, 1) == [2, 1, 0]


def test_shuffle_actually_reorders():
    assert any(order(8, True, seed) != list(range(8)) for seed in range(5))


def test_generator_stays_in_bound():
    rng = LinearCongruentialGenerator(42)
    assert all(0 <= rng.next_below(7) < 7 for _ in range(100))


def test_display_order_per_section():
    exam = ExamDefinition(
        id="s",
        has_sections=True,
        shuffle=True,
        sections=[
            Section(name="A", questions=[make_question(0) for _ in range(6)]),
            Section(name="B", questions=[]),
            Section(name="C", questions=[make_question(0) for _ in range(4)]),
        ],
    )
    rows = display_order(exam, seed=7)

    assert [len(r) for r in rows] == [6, 0, 4]
    assert rows[0] == order(6, True, 7)
    assert rows[2] == order(4, True, 9)
    assert display_order(exam, seed=7) == rows


def test_display_order_without_shuffle(flat_exam):
    assert display_order(flat_exam, seed=123) == [[0, 1, 2]]
