"""
services/catalog.py

시험 정의 저장소 (읽기 위주). 디렉토리의 <test_id>.json 파일을 읽어 온다.
"""

import logging
import os
import threading
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from mock_exam_cbt.models.question_model import ExamDefinition
from mock_exam_cbt.services.errors import DefinitionNotFound
from mock_exam_cbt.services.snapshot_store import safe_name

logger = logging.getLogger(__name__)


class ExamCatalog:
    def __init__(
        self,
        directory: Optional[str] = None,
        definitions: Iterable[ExamDefinition] = (),
    ):
        self.directory = directory
        self._lock = threading.Lock()
        self._exams: Dict[str, ExamDefinition] = {d.id: d for d in definitions}
        if directory and os.path.isdir(directory):
            self._load_directory(directory)

    def _load_directory(self, directory: str) -> None:
        loaded = 0
        for name in sorted(os.listdir(directory)):
            if not name.endswith(".json"):
                continue
            try:
                with open(os.path.join(directory, name), encoding="utf-8") as f:
                    definition = ExamDefinition.model_validate_json(f.read())
            except (OSError, ValidationError) as e:
                logger.warning(f"시험 정의 로드 실패 - {name}: {e}")
                continue
            self._exams[definition.id] = definition
            loaded += 1
        logger.info(f"시험 정의 {loaded}건 로드 ({directory})")

    def get(self, test_id: str) -> ExamDefinition:
        with self._lock:
            definition = self._exams.get(test_id)
        if definition is None:
            raise DefinitionNotFound(test_id)
        return definition

    def list(self) -> List[ExamDefinition]:
        with self._lock:
            return list(self._exams.values())

    def add(self, definition: ExamDefinition) -> None:
        """정의를 추가(같은 ID면 교체)하고 디렉토리가 있으면 파일로도 기록."""
        if self.directory:
            os.makedirs(self.directory, exist_ok=True)
            path = os.path.join(self.directory, f"{safe_name(definition.id)}.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write(definition.model_dump_json(indent=2))
        with self._lock:
            self._exams[definition.id] = definition
