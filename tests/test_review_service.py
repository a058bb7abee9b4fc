"""
제출 기록 조립 / 리뷰 / 리더보드 / 응시 이력 테스트
"""

from datetime import datetime, timedelta, timezone

from mock_exam_cbt.models.attempt_record import UserIdentity
from mock_exam_cbt.models.session_state import FlatAnswers, SectionalAnswers
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.review_service import build_review, format_duration, history, leaderboard
from mock_exam_cbt.services.submission import build_attempt_record, time_taken_seconds


class _SteppingClock:
    """create() 호출마다 1분씩 늦은 서버 시각."""

    def __init__(self):
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def test_time_taken_is_clamped():
    assert time_taken_seconds(1800, 1735) == 65
    assert time_taken_seconds(1800, 0) == 1800
    assert time_taken_seconds(1800, 1800) == 0
    assert time_taken_seconds(1800, 2000) == 0
    assert time_taken_seconds(1800, -5) == 1800


class TestBuildAttemptRecord:
    def test_fields_from_scoring(self, flat_exam):
        record = build_attempt_record(
            flat_exam,
            UserIdentity(user_id="u-9", display_name="Ravi"),
            FlatAnswers(answers=[1, 2, None]),
            seconds_remaining=1700,
        )

        assert record.id is None
        assert record.submitted_at is None
        assert record.username == "Ravi"
        assert record.test_title == "Flat Mock"
        assert (record.total_score, record.total_marks, record.total_questions) == (1, 4, 3)
        assert (record.correct_count, record.wrong_count, record.skipped_count) == (1, 1, 1)
        assert record.time_taken_seconds == 100
        assert not record.auto_submitted

    def test_username_falls_back_to_user_id(self, flat_exam):
        record = build_attempt_record(
            flat_exam, UserIdentity(user_id="anon-7"), FlatAnswers(answers=[None] * 3), 0
        )
        assert record.username == "anon-7"
        assert record.time_taken_seconds == 1800

    def test_sectional_record_keeps_section_scores(self, sectional_exam, user):
        record = build_attempt_record(
            sectional_exam,
            user,
            SectionalAnswers(sections=[[0, 1], [None]]),
            seconds_remaining=10,
            auto_submitted=True,
        )
        assert record.has_sections
        assert [s.score for s in record.section_scores] == [2, 0]
        assert record.auto_submitted


def _submit(store, definition, user_id, answers, remaining):
    record = build_attempt_record(definition, UserIdentity(user_id=user_id), answers, remaining)
    return store.create(record)


class TestLeaderboard:
    def test_orders_by_score_then_time_then_submission(self, flat_exam):
        store = AttemptStore(server_time=_SteppingClock())
        slow_full = _submit(store, flat_exam, "a", FlatAnswers(answers=[1, 0, 2]), 100)
        fast_full = _submit(store, flat_exam, "b", FlatAnswers(answers=[1, 0, 2]), 1000)
        partial = _submit(store, flat_exam, "c", FlatAnswers(answers=[1, None, None]), 1700)
        late_tie = _submit(store, flat_exam, "d", FlatAnswers(answers=[1, 0, 2]), 1000)

        board = leaderboard(store, "flat-1")

        assert [r.id for r in board] == [fast_full, late_tie, slow_full, partial]

    def test_limit_and_other_tests_ignored(self, flat_exam, sectional_exam):
        store = AttemptStore()
        for i in range(5):
            _submit(store, flat_exam, f"u{i}", FlatAnswers(answers=[1, 0, 2]), i)
        _submit(store, sectional_exam, "x", SectionalAnswers(sections=[[0, 1], [0]]), 0)

        board = leaderboard(store, "flat-1", limit=3)
        assert len(board) == 3
        assert all(r.test_id == "flat-1" for r in board)


def test_history_newest_first(flat_exam, sectional_exam):
    store = AttemptStore(server_time=_SteppingClock())
    first = _submit(store, flat_exam, "u-1", FlatAnswers(answers=[None] * 3), 0)
    _submit(store, flat_exam, "someone", FlatAnswers(answers=[None] * 3), 0)
    second = _submit(store, sectional_exam, "u-1", SectionalAnswers(sections=[[0, 1], [0]]), 0)

    assert [r.id for r in history(store, "u-1")] == [second, first]
    assert history(store, "nobody") == []


class TestBuildReview:
    def test_review_matches_stored_score(self, flat_exam):
        store = AttemptStore()
        record = store.get(_submit(store, flat_exam, "u-1", FlatAnswers(answers=[1, 2, None]), 1735))

        review = build_review(record, flat_exam)

        assert review["consistent"] is True
        assert review["time_taken"] == "01:05"
        assert review["accuracy"] == 50.0
        assert [q["outcome"] for q in review["questions"]] == ["correct", "wrong", "skipped"]
        assert review["record"]["id"] == record.id

    def test_inconsistent_when_definition_changed(self, flat_exam):
        store = AttemptStore()
        record = store.get(_submit(store, flat_exam, "u-1", FlatAnswers(answers=[1, 0, 2]), 0))
        changed = flat_exam.model_copy(
            update={"questions": [q.model_copy(update={"correct_option_index": 3}) for q in flat_exam.questions]}
        )
        assert build_review(record, changed)["consistent"] is False


def test_format_duration():
    assert format_duration(0) == "00:00"
    assert format_duration(65) == "01:05"
    assert format_duration(1800) == "30:00"
    assert format_duration(-3) == "00:00"
