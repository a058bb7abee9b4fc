"""
services/errors.py

응시 엔진 예외. API 레이어에서 HTTP 상태 코드로 변환된다.
"""


class DefinitionNotFound(LookupError):
    """시험 정의가 없음. 세션은 종료 상태가 되며 재시도하지 않는다."""

    def __init__(self, test_id: str):
        super().__init__(f"시험을 찾을 수 없습니다: {test_id}")
        self.test_id = test_id


class SubmissionFailed(RuntimeError):
    """원격 저장 실패. 로컬 스냅샷은 유지되며 다시 제출할 수 있다."""


class InvalidLocalSnapshot(ValueError):
    """손상되었거나 다른 시험의 스냅샷. 스냅샷이 없는 것으로 취급한다."""


class MalformedDefinition(ValueError):
    """출제/가져오기 단계에서 거부된 시험 정의."""


class SessionNotActive(RuntimeError):
    """진행 중(ACTIVE)이 아닌 세션에 대한 입력."""
