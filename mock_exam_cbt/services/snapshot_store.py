"""
services/snapshot_store.py

응시 중 세션 스냅샷을 보관하는 로컬 키-값 저장소.
값은 JSON 문자열, 키는 시험별로 고유("attempt_<test_id>").

  - FileSnapshotStore:   사용자 디렉토리 아래 <key>.json 파일 (재시작 후에도 유지)
  - MemorySnapshotStore: 프로세스 메모리 (테스트/임시용)
"""

import logging
import os
import re
import threading
from typing import Dict, Optional, Protocol

from mock_exam_cbt.services.errors import InvalidLocalSnapshot

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def snapshot_key(test_id: str) -> str:
    return f"attempt_{test_id}"


def safe_name(name: str) -> str:
    """파일/디렉토리 이름으로 쓸 수 있게 변환."""
    return _UNSAFE_CHARS.sub("_", name) or "_"


class SnapshotStore(Protocol):
    def load(self, key: str) -> Optional[str]: ...

    def save(self, key: str, data: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemorySnapshotStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def save(self, key: str, data: str) -> None:
        with self._lock:
            self._data[key] = data

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class FileSnapshotStore:
    """
    디렉토리 기반 저장소. 쓰기는 임시 파일 → os.replace로 원자적으로 교체한다.
    쓰기 실패(OSError)는 호출자에게 그대로 전달된다.
    UTF-8로 읽을 수 없는 파일은 InvalidLocalSnapshot.
    """

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{safe_name(key)}.json")

    def load(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, encoding="utf-8") as f:
            try:
                return f.read()
            except UnicodeDecodeError as e:
                raise InvalidLocalSnapshot(f"스냅샷 인코딩 오류 - {key}: {e.reason}") from e

    def save(self, key: str, data: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(key)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            logger.debug(f"삭제할 스냅샷 없음: {key}")
