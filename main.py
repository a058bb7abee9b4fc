"""
main.py — 모의고사 CBT 서버 진입점
"""

import argparse
import os
import socket
import sys
import time
import threading
import logging
import traceback
import webbrowser

# ── 패키지 경로 설정 (반드시 최상단) ──────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, LOG_FILE, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT

# ── 로깅 설정 ────────────────────────────────────────────────────────────────
try:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )
except PermissionError:
    # 로그 파일 점유 시 콘솔 출력만 사용
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)

# ── 서버 및 네트워크 유틸 ───────────────────────────────────────────────────

def _find_free_port(host: str) -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]

def _wait_for_server(host: str, port: int, timeout: float = DEFAULT_TIMEOUT) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((host, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False

def _start_server(host: str, port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"Uvicorn 서버 시작 - {host}:{port}")
        app = create_app()
        uvicorn.run(app, host=host, port=port, log_level="warning")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")

def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="모의고사 CBT 서버")
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"바인드 주소 (기본 {DEFAULT_HOST})")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT,
                        help=f"포트 (기본 {DEFAULT_PORT}, 0이면 빈 포트 자동 선택)")
    parser.add_argument("--open-browser", action="store_true", help="서버 준비 후 API 문서를 브라우저로 연다")
    return parser.parse_args(argv)

# ── 메인 실행 ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    args = _parse_args()
    logger.info("=== Mock Test CBT Server Started ===")
    os.chdir(BASE_DIR)

    port = args.port or _find_free_port(args.host)
    server_thread = threading.Thread(target=_start_server, args=(args.host, port), daemon=True)
    server_thread.start()

    if _wait_for_server(args.host, port):
        logger.info(f"서버 준비 완료: http://{args.host}:{port}")
        if args.open_browser:
            webbrowser.open(f"http://{args.host}:{port}/docs")

        # 메인 스레드 유지
        try:
            while server_thread.is_alive():
                time.sleep(10)
        except KeyboardInterrupt:
            logger.info("사용자에 의해 종료되었습니다.")
    else:
        logger.error("서버 시작 제한 시간을 초과했습니다. 포트를 사용 중인 기존 프로세스를 확인해 보세요.")
        sys.exit(1)
