"""
api/app.py — FastAPI 앱 팩토리

구성 요소:
  - 시험 기록 DB 엔진/세션 팩토리 (app.state 에 보관)
  - 쿠키 세션 미들웨어 (cbt_session)
  - 만료 세션 정리 스레드
"""

import logging
import os
import threading
import time
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

import api.session as session
from api.routes import router
from config import BANK_FILES, DATABASE_URL
from exam_cbt.db.database import init_db, make_engine, make_session_factory

SESSION_COOKIE = "cbt_session"
CLEANUP_INTERVAL = 300  # 초

logger = logging.getLogger(__name__)


def create_app(database_url: Optional[str] = None) -> FastAPI:
    """
    앱 인스턴스 생성. database_url 을 주면 기본 DB 대신 사용한다
    (테스트에서는 "sqlite://" 인메모리 DB).
    """
    app = FastAPI(title="CBT Exam System", docs_url=None, redoc_url=None)

    engine = make_engine(database_url or DATABASE_URL)
    init_db(engine)
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        # 쿠키의 세션이 없거나 만료됐으면 새로 발급
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)

    @app.get("/")
    async def service_info():
        return {
            "service": app.title,
            "difficulties": {
                name: os.path.exists(path) for name, path in sorted(BANK_FILES.items())
            },
        }

    @app.get("/api/health")
    async def health():
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"DB 상태 확인 실패: {e}")
            return {"ok": False, "database": False}
        return {"ok": True, "database": True}

    _start_cleanup_thread()
    return app


def _start_cleanup_thread() -> None:
    def _cleanup_loop():
        while True:
            time.sleep(CLEANUP_INTERVAL)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"만료 세션 {removed}개 정리")

    threading.Thread(target=_cleanup_loop, daemon=True, name="session-cleanup").start()
