import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
DATA_DIR = os.getenv("EXAM_DATA_DIR", os.path.join(BASE_DIR, "data"))
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
DEFAULT_TIMEOUT = 15.0
OPEN_BROWSER = os.getenv("OPEN_BROWSER", "1") == "1"

# DB 설정 (시험 기록 / 오답 / 통계)
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(BASE_DIR, 'exam.db')}")

# 문제은행 설정
BANK_FILES = {
    "basic": os.path.join(DATA_DIR, "basic.md"),
    "applied": os.path.join(DATA_DIR, "questionBank.md"),
}
DEFAULT_DIFFICULTY = "applied"
# 문항 부족 시 보충할 문제은행 (난이도 → 보충 난이도)
FALLBACK_DIFFICULTY = {"basic": "applied"}
MAX_BANK_SIZE = 10 * 1024 * 1024  # 업로드 문제은행 최대 10MB
MAX_PDF_PAGES = 200

# 출제 설정 (유형별 문항 수)
SINGLE_COUNT = int(os.getenv("SINGLE_COUNT", "50"))
TRUE_FALSE_COUNT = int(os.getenv("TRUE_FALSE_COUNT", "20"))
MULTIPLE_COUNT = int(os.getenv("MULTIPLE_COUNT", "30"))

# 채점 설정
EXAM_TIME_LIMIT_MS = int(os.getenv("EXAM_TIME_LIMIT_MS", str(90 * 60 * 1000)))  # 90분
TICK_SECONDS = 1.0
FULL_MARKS = 100.0          # 단일 50 + 판단 20 + 다중 30 (1 / 1 / 1.5점)
PASS_SCORE = 60.0
# True 이면 백분율 분모를 FULL_MARKS 대신 시험지 총점으로 사용
PERCENT_OF_PAPER_TOTAL = os.getenv("PERCENT_OF_PAPER_TOTAL", "0") == "1"
