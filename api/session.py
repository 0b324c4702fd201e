"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션별로 독립된 SessionContext 를 유지.
라우트는 전역 상태 대신 의존성 주입으로 SessionContext 를 받는다.
TTL(기본 3시간) 경과 시 자동 만료. 만료 시 진행 중인 카운트다운도 정리한다.
"""

import threading
import time
import uuid
from typing import Dict, Optional

from exam_cbt.services.exam_session import ExamSession

_lock = threading.Lock()
_sessions: Dict[str, "SessionContext"] = {}
_timestamps: Dict[str, float] = {}

SESSION_TTL = 3 * 3600  # 90분 시험 + 결과 확인 여유


class SessionContext:
    """
    브라우저 세션 하나의 상태.

    Attributes:
        session_id:  쿠키 세션 ID.
        user_id:     기록 저장에 쓰는 사용자 식별자 (기본은 세션 ID).
        bank_text:   업로드된 문제은행 원문 (없으면 None → 파일 문제은행 사용).
        bank_name:   업로드 파일명.
        exam:        현재 응시 세션.
        saved:       완료된 시험 결과의 저장 성공 여부 (None = 아직 저장 전).
        save_error:  저장 실패 메시지.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.user_id = session_id
        self.bank_text: Optional[str] = None
        self.bank_name: str = ""
        self.exam: Optional[ExamSession] = None
        self.saved: Optional[bool] = None
        self.save_error: str = ""

    def replace_exam(self, exam: Optional[ExamSession]) -> None:
        """새 응시로 교체. 이전 응시가 진행 중이면 카운트다운만 멈추고 버린다."""
        if self.exam is not None:
            self.exam.stop_timer()
        self.exam = exam
        self.saved = None
        self.save_error = ""


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = SessionContext(sid)
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> Optional[SessionContext]:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            ctx = _sessions.pop(sid)
            del _timestamps[sid]
            ctx.replace_exam(None)
            return None
        _timestamps[sid] = time.time()  # 접근 시 갱신
        return _sessions[sid]


def reset(sid: str) -> None:
    """세션 초기화 (사용자 ID는 유지)."""
    with _lock:
        ctx = _sessions.get(sid)
        if ctx is None:
            return
        user_id = ctx.user_id
        ctx.replace_exam(None)
        fresh = SessionContext(sid)
        fresh.user_id = user_id
        _sessions[sid] = fresh
        _timestamps[sid] = time.time()


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    removed = 0
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            _sessions.pop(sid).replace_exam(None)
            del _timestamps[sid]
            removed += 1
    return removed
