import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
DATA_DIR = os.getenv("MOCK_EXAM_DATA_DIR", os.path.join(BASE_DIR, "data"))
CATALOG_DIR = os.path.join(DATA_DIR, "tests")        # 시험 정의 JSON
SNAPSHOT_DIR = os.path.join(DATA_DIR, "snapshots")   # 응시 중 스냅샷 (사용자별)
ATTEMPTS_DIR = os.path.join(DATA_DIR, "attempts")    # 제출된 응시 기록
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
DEFAULT_TIMEOUT = 15.0

# 시험 설정
DEFAULT_DURATION_SECONDS = 30 * 60   # 타이머 정보가 없는 시험의 기본 제한 시간
PERSIST_INTERVAL_SECONDS = min(8, max(5, int(os.getenv("PERSIST_INTERVAL_SECONDS", "5"))))
LEADERBOARD_LIMIT = 10

# 브라우저 세션 설정
SESSION_TTL = 3600               # 1시간
SESSION_CLEANUP_INTERVAL = 300   # 5분
