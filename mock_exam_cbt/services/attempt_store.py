"""
services/attempt_store.py

제출된 응시 기록(AttemptRecord) 저장소. 추가만 가능하고 수정/삭제는 없다.

메모리 인덱스 + (선택) 디렉토리에 기록당 JSON 파일 1개.
파일 쓰기에 실패하면 메모리에도 반영하지 않고 예외를 그대로 올린다.
"""

import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from mock_exam_cbt.models.attempt_record import AttemptRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttemptStore:
    def __init__(
        self,
        directory: Optional[str] = None,
        server_time: Callable[[], datetime] = _utcnow,
    ):
        self.directory = directory
        self._server_time = server_time
        self._lock = threading.Lock()
        self._records: Dict[str, AttemptRecord] = {}
        if directory:
            self._load_directory(directory)

    def _load_directory(self, directory: str) -> None:
        if not os.path.isdir(directory):
            return
        for name in sorted(os.listdir(directory)):
            if not name.endswith(".json"):
                continue
            path = os.path.join(directory, name)
            try:
                with open(path, encoding="utf-8") as f:
                    record = AttemptRecord.model_validate_json(f.read())
            except (OSError, ValidationError) as e:
                logger.warning(f"응시 기록 로드 실패 - {name}: {e}")
                continue
            self._records[record.id] = record
        logger.info(f"응시 기록 {len(self._records)}건 로드")

    def create(self, record: AttemptRecord) -> str:
        """기록을 한 번 저장하고 새 ID를 반환. 제출 시각은 저장소가 찍는다."""
        record_id = uuid.uuid4().hex
        stored = record.model_copy(update={"id": record_id, "submitted_at": self._server_time()})

        if self.directory:
            os.makedirs(self.directory, exist_ok=True)
            path = os.path.join(self.directory, f"{record_id}.json")
            with open(path, "x", encoding="utf-8") as f:
                f.write(stored.model_dump_json())

        with self._lock:
            self._records[record_id] = stored
        return record_id

    def get(self, record_id: str) -> Optional[AttemptRecord]:
        with self._lock:
            return self._records.get(record_id)

    def for_test(self, test_id: str) -> List[AttemptRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.test_id == test_id]

    def for_user(self, user_id: str) -> List[AttemptRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.user_id == user_id]
