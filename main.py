"""
main.py — CBT 시험 서버 진입점
"""

import os
import socket
import sys
import threading
import time
import logging
import traceback
import webbrowser

# ── 패키지 경로 설정 (반드시 최상단) ──────────────────────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT, LOG_FILE, OPEN_BROWSER

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


# ── 서버 유틸 ────────────────────────────────────────────────────────────────

def _port_in_use(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex((DEFAULT_HOST, port)) == 0


def _wait_for_server(port: int, timeout: float = DEFAULT_TIMEOUT) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _start_server(port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"Uvicorn 서버 시작 - {DEFAULT_HOST}:{port}")
        uvicorn.run(create_app(), host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")


# ── 메인 실행 ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("=== CBT Exam System Started ===")
    os.chdir(BASE_DIR)

    if _port_in_use(DEFAULT_PORT):
        logger.error(f"포트 {DEFAULT_PORT}가 이미 사용 중입니다. PORT 환경 변수로 다른 포트를 지정하세요.")
        sys.exit(1)

    server_thread = threading.Thread(target=_start_server, args=(DEFAULT_PORT,), daemon=True)
    server_thread.start()

    if not _wait_for_server(DEFAULT_PORT):
        logger.error("서버 시작 제한 시간을 초과했습니다.")
        sys.exit(1)

    url = f"http://{DEFAULT_HOST}:{DEFAULT_PORT}"
    logger.info(f"서버 준비 완료: {url}")
    if OPEN_BROWSER:
        webbrowser.open(url)

    # 메인 스레드 유지
    try:
        while server_thread.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("사용자에 의해 종료되었습니다.")
