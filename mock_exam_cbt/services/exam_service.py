"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성 — I/O, 입력 변경, 전역 상태 변경 없음.
같은 입력으로 몇 번을 호출해도 같은 결과를 낸다 (리뷰 화면이 저장된 점수와
독립적으로 다시 채점한다).
"""

from typing import Dict, List, Optional, Union

from mock_exam_cbt.models.attempt_record import ScoreResult, SectionScore
from mock_exam_cbt.models.question_model import ExamDefinition, Question
from mock_exam_cbt.models.session_state import FlatAnswers, SectionalAnswers

CORRECT = "correct"
WRONG = "wrong"
SKIPPED = "skipped"


def judge(question: Question, answer: Optional[int]) -> str:
    """
    단일 문제 판정.

    - None(미응답)만 SKIPPED. 0은 첫 번째 보기를 고른 정상 응답이다.
    - 정답 인덱스와 정확히 같을 때만 CORRECT.
    - 형식이 깨진 문제(보기 4개가 아님 등)는 응답하면 항상 WRONG.
    """
    if answer is None:
        return SKIPPED
    if question.is_well_formed and answer == question.correct_option_index:
        return CORRECT
    return WRONG


def _answer_at(rows: List[List[Optional[int]]], si: int, qi: int) -> Optional[int]:
    if si >= len(rows) or qi >= len(rows[si]):
        return None
    return rows[si][qi]


def calculate_score(
    definition: ExamDefinition,
    answers: Union[FlatAnswers, SectionalAnswers],
) -> ScoreResult:
    """
    답안을 채점한다.

    채점 기준:
      - 저장 순서대로 순회 (화면 표시 순서와 무관)
      - 만점(total_marks)은 모든 문제 배점의 합
      - 정답이면 배점만큼 가산
      - 응답했지만 오답이면 negative_mark_per_wrong 만큼 감점
      - 감점으로 음수가 되면 시험 전체 점수만 0점으로 하한 (문제별 하한 없음)
      - 중간 반올림 없음: 섹션 점수를 순서대로 더한 값이 그대로 raw_score

    Args:
        definition: 채점 대상 시험 정의.
        answers:    답안지 (FlatAnswers / SectionalAnswers).

    Returns:
        ScoreResult. 섹션형이면 섹션 순서대로 SectionScore를 포함하며
        문제가 없는 섹션도 0/0으로 포함한다.
    """
    rows = answers.rows()
    penalty = definition.negative_mark_per_wrong

    section_scores: List[SectionScore] = []
    raw_score = 0.0
    total_marks = 0.0
    counts = {CORRECT: 0, WRONG: 0, SKIPPED: 0}

    for si, questions in enumerate(definition.rows()):
        sec_score = 0.0
        sec_marks = 0.0
        for qi, question in enumerate(questions):
            sec_marks += question.marks
            outcome = judge(question, _answer_at(rows, si, qi))
            counts[outcome] += 1
            if outcome == CORRECT:
                sec_score += question.marks
            elif outcome == WRONG:
                sec_score -= penalty

        if definition.has_sections:
            section_scores.append(SectionScore(
                name=definition.sections[si].name,
                score=sec_score,
                marks=sec_marks,
                question_count=len(questions),
            ))
        raw_score += sec_score
        total_marks += sec_marks

    return ScoreResult(
        total_score=max(0.0, raw_score),
        raw_score=raw_score,
        total_marks=total_marks,
        total_questions=sum(counts.values()),
        correct_count=counts[CORRECT],
        wrong_count=counts[WRONG],
        skipped_count=counts[SKIPPED],
        section_scores=section_scores,
    )


def question_outcomes(
    definition: ExamDefinition,
    answers: Union[FlatAnswers, SectionalAnswers],
) -> List[Dict[str, object]]:
    """
    문제별 판정 결과 (리뷰/해설 화면용). 저장 순서.

    Returns:
        [{"section_index", "question_index", "section", "text", "options",
          "correct_option_index", "user_answer", "outcome", "marks",
          "solution_text"}, ...]
    """
    rows = answers.rows()
    result = []
    for si, questions in enumerate(definition.rows()):
        section_name = definition.sections[si].name if definition.has_sections else None
        for qi, q in enumerate(questions):
            user_answer = _answer_at(rows, si, qi)
            result.append({
                "section_index": si,
                "question_index": qi,
                "section": section_name,
                "text": q.text,
                "options": q.options,
                "correct_option_index": q.correct_option_index,
                "user_answer": user_answer,
                "outcome": judge(q, user_answer),
                "marks": q.marks,
                "solution_text": q.solution_text,
            })
    return result


def accuracy(result: ScoreResult) -> float:
    """응답한 문제 중 정답 비율 (%). 응답이 없으면 0.0."""
    attempted = result.correct_count + result.wrong_count
    if not attempted:
        return 0.0
    return round(result.correct_count / attempted * 100, 2)
