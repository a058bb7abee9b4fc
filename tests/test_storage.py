"""
저장소 테스트: 스냅샷 파일 저장소, 응시 기록 저장소, 시험 카탈로그
"""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mock_exam_cbt.models.attempt_record import AttemptRecord
from mock_exam_cbt.models.session_state import FlatAnswers
from mock_exam_cbt.services.attempt_store import AttemptStore
from mock_exam_cbt.services.catalog import ExamCatalog
from mock_exam_cbt.services.errors import DefinitionNotFound, InvalidLocalSnapshot
from mock_exam_cbt.services.snapshot_store import FileSnapshotStore, safe_name, snapshot_key


def _record(**overrides) -> AttemptRecord:
    data = {
        "user_id": "u-1",
        "test_id": "flat-1",
        "answers": FlatAnswers(answers=[1, None]),
        "total_score": 1,
        "total_marks": 2,
        "total_questions": 2,
        "time_taken_seconds": 42,
    }
    data.update(overrides)
    return AttemptRecord(**data)


class TestFileSnapshotStore:
    def test_save_load_delete(self, tmp_path):
        store = FileSnapshotStore(str(tmp_path / "u-1"))
        key = snapshot_key("flat-1")

        assert store.load(key) is None
        store.save(key, '{"a": 1}')
        assert store.load(key) == '{"a": 1}'
        assert (tmp_path / "u-1" / "attempt_flat-1.json").exists()

        store.delete(key)
        assert store.load(key) is None
        store.delete(key)

    def test_keys_per_test_do_not_collide(self, tmp_path):
        store = FileSnapshotStore(str(tmp_path))
        store.save(snapshot_key("a"), "A")
        store.save(snapshot_key("b"), "B")
        assert store.load(snapshot_key("a")) == "A"
        assert store.load(snapshot_key("b")) == "B"

    def test_undecodable_file_is_an_invalid_snapshot(self, tmp_path):
        store = FileSnapshotStore(str(tmp_path))
        (tmp_path / "attempt_flat-1.json").write_bytes(b"\xff\xfe\x00garbage")

        with pytest.raises(InvalidLocalSnapshot):
            store.load(snapshot_key("flat-1"))

    def test_safe_name(self):
        assert safe_name("../etc/passwd") == ".._etc_passwd"
        assert safe_name("") == "_"


class TestAttemptStore:
    def test_create_assigns_id_and_server_time(self):
        fixed = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        store = AttemptStore(server_time=lambda: fixed)

        record_id = store.create(_record())
        stored = store.get(record_id)

        assert stored.id == record_id
        assert stored.submitted_at == fixed
        assert store.for_test("flat-1") == [stored]
        assert store.for_user("u-1") == [stored]
        assert store.for_user("someone-else") == []

    def test_each_create_is_a_new_record(self):
        store = AttemptStore()
        first = store.create(_record())
        second = store.create(_record())
        assert first != second
        assert len(store.for_test("flat-1")) == 2

    def test_records_are_immutable(self):
        store = AttemptStore()
        stored = store.get(store.create(_record()))
        with pytest.raises(ValidationError):
            stored.total_score = 99

    def test_directory_round_trip(self, tmp_path):
        store = AttemptStore(str(tmp_path))
        record_id = store.create(_record())

        reloaded = AttemptStore(str(tmp_path))
        record = reloaded.get(record_id)
        assert record is not None
        assert record.answers == FlatAnswers(answers=[1, None])
        assert record.submitted_at is not None


class TestExamCatalog:
    def test_get_unknown_raises(self):
        with pytest.raises(DefinitionNotFound):
            ExamCatalog().get("nope")

    def test_loads_directory_and_skips_bad_files(self, tmp_path):
        (tmp_path / "good.json").write_text(json.dumps({
            "id": "legacy",
            "title": "Legacy doc",
            "duration": 20,
            "hasSections": False,
            "questions": [{"q": "2+2?", "options": ["1", "2", "3", "4"], "ans": 3}],
        }), encoding="utf-8")
        (tmp_path / "bad.json").write_text("{oops", encoding="utf-8")

        catalog = ExamCatalog(str(tmp_path))
        legacy = catalog.get("legacy")

        assert [d.id for d in catalog.list()] == ["legacy"]
        assert legacy.planned_duration_seconds == 20 * 60
        assert legacy.questions[0].correct_option_index == 3
        assert legacy.questions[0].marks == 1

    def test_add_writes_file(self, tmp_path, flat_exam):
        catalog = ExamCatalog(str(tmp_path))
        catalog.add(flat_exam)

        reloaded = ExamCatalog(str(tmp_path))
        assert reloaded.get("flat-1") == flat_exam
