"""
api/routes.py — FastAPI 엔드포인트
"""

import asyncio
import logging
import random
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
import api.session as session
from api.session import SessionContext
from exam_cbt.db import crud
from exam_cbt.models.question_model import ExamQuotas, Question, QuestionType
from exam_cbt.models.session_state import ExamStatus
from exam_cbt.services.bank_loader import QuestionBankNotFoundError, decode_bank_upload
from exam_cbt.services.bank_parser import parse_question_bank
from exam_cbt.services.exam_service import (
    build_submission,
    calculate_type_breakdown,
    format_user_answer,
)
from exam_cbt.services.exam_session import (
    EVENT_COMPLETED,
    ExamSession,
    InvalidStateError,
    QuestionNotFoundError,
    format_time,
)
from exam_cbt.services.paper_assembler import generate_exam_paper, partition

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class StartExamBody(BaseModel):
    difficulty: str = config.DEFAULT_DIFFICULTY
    use_uploaded_bank: bool = False
    single_count: int = Field(config.SINGLE_COUNT, ge=0)
    true_false_count: int = Field(config.TRUE_FALSE_COUNT, ge=0)
    multiple_count: int = Field(config.MULTIPLE_COUNT, ge=0)
    user_id: Optional[str] = None
    seed: Optional[int] = None

class SaveAnswerBody(BaseModel):
    question_id: str
    answer: Union[str, List[str]]

class NavigateBody(BaseModel):
    index: int = 0


# ── 의존성 ───────────────────────────────────────────────────────────────────

def get_context(request: Request) -> SessionContext:
    ctx = session.get_session(request.state.session_id)
    if ctx is None:
        raise HTTPException(status_code=401, detail="세션이 만료되었습니다. 새로고침해 주세요.")
    return ctx


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def _require_exam(ctx: SessionContext) -> ExamSession:
    if ctx.exam is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return ctx.exam


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _question_to_dict(q: Question, include_answer: bool = False) -> dict:
    d = {
        "id": q.id,
        "type": q.type.value,
        "category": q.category,
        "question_text": q.question_text,
        "options": list(q.options),
        "score": q.score,
    }
    if include_answer:
        d["correct_answer"] = q.correct_answer
    return d


def _make_result_recorder(ctx: SessionContext, exam: ExamSession, session_factory):
    """
    완료 이벤트 구독자. 수동 제출과 시간 만료 자동 제출이 같은 경로로 저장된다.
    저장 실패는 결과 표시를 막지 않고 경고 로그 + ctx.saved=False 로만 남긴다.
    """
    def _on_state_change(event: str, state) -> None:
        if event != EVENT_COMPLETED:
            return
        result = exam.result
        db = session_factory()
        try:
            crud.save_exam_submission(db, ctx.user_id, build_submission(result, exam.paper))
            ctx.saved = True
        except SQLAlchemyError as e:
            ctx.saved = False
            ctx.save_error = "시험 결과를 저장하지 못했습니다."
            logger.warning(f"시험 결과 저장 실패 (결과 화면은 정상 표시): {e}")
        finally:
            db.close()

    return _on_state_change


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/upload-bank")
async def upload_bank(file: UploadFile = File(...), ctx: SessionContext = Depends(get_context)):
    file_bytes = await file.read()
    if len(file_bytes) > config.MAX_BANK_SIZE:
        raise HTTPException(status_code=413, detail="문제은행 파일이 너무 큽니다 (최대 10MB).")
    try:
        text = await asyncio.to_thread(decode_bank_upload, file.filename or "", file_bytes)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    bank = await asyncio.to_thread(parse_question_bank, text, "custom")
    pools = partition(bank)
    count = len(pools.single) + len(pools.true_false) + len(pools.multiple)
    if not count:
        raise HTTPException(status_code=422, detail="문항을 추출하지 못했습니다. 문제은행 형식을 확인해 주세요.")

    ctx.bank_text = text
    ctx.bank_name = file.filename or ""
    return {
        "count": count,
        "single": len(pools.single),
        "true_false": len(pools.true_false),
        "multiple": len(pools.multiple),
        "ok": True,
    }


@router.get("/api/session-status")
async def session_status(ctx: SessionContext = Depends(get_context)):
    exam = ctx.exam
    return {
        "user_id": ctx.user_id,
        "uploaded_bank": ctx.bank_name or None,
        "difficulties": sorted(config.BANK_FILES),
        "exam_status": exam.status.value if exam else ExamStatus.NOT_STARTED.value,
    }


@router.post("/api/start-exam")
async def start_exam(
    body: StartExamBody,
    request: Request,
    ctx: SessionContext = Depends(get_context),
):
    if body.use_uploaded_bank and not ctx.bank_text:
        raise HTTPException(status_code=400, detail="업로드된 문제은행이 없습니다.")

    quotas = ExamQuotas(
        single=body.single_count,
        true_false=body.true_false_count,
        multiple=body.multiple_count,
    )
    rng = random.Random(body.seed) if body.seed is not None else None
    difficulty = "custom" if body.use_uploaded_bank else body.difficulty
    try:
        paper = await asyncio.to_thread(
            generate_exam_paper,
            difficulty,
            quotas,
            rng,
            ctx.bank_text if body.use_uploaded_bank else None,
        )
    except QuestionBankNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not paper.questions:
        raise HTTPException(status_code=400, detail="출제할 문항이 없습니다.")

    if body.user_id:
        ctx.user_id = body.user_id.strip() or ctx.user_id

    exam = ExamSession(paper)
    ctx.replace_exam(exam)
    exam.subscribe(_make_result_recorder(ctx, exam, request.app.state.session_factory))
    exam.start()
    return {
        "exam_id": paper.id,
        "total": len(paper.questions),
        "total_score": paper.total_score,
        "time_limit_ms": config.EXAM_TIME_LIMIT_MS,
        "ok": True,
    }


@router.get("/api/question/{index}")
async def get_question(index: int, ctx: SessionContext = Depends(get_context)):
    exam = _require_exam(ctx)
    questions = exam.paper.questions
    if not (0 <= index < len(questions)):
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")

    q = questions[index]
    state = exam.state
    saved = state.answers.get(q.id)

    d = _question_to_dict(q, include_answer=state.status == ExamStatus.COMPLETED)
    d.update({
        "saved_answer": saved.user_answer if saved else None,
        "index": index,
        "total": len(questions),
    })
    return d


@router.get("/api/exam-state")
async def get_exam_state(ctx: SessionContext = Depends(get_context)):
    exam = _require_exam(ctx)
    state = exam.state
    return {
        "status": state.status.value,
        "current_question_index": state.current_question_index,
        "time_remaining_ms": state.time_remaining_ms,
        "time_remaining": format_time(state.time_remaining_ms),
        "user_answers": {k: a.user_answer for k, a in state.answers.items()},
        "answered_count": len(state.answers),
        "progress": exam.progress(),
        "total": len(exam.paper.questions),
        "question_ids": [q.id for q in exam.paper.questions],
        "question_types": [q.type.value for q in exam.paper.questions],
    }


@router.post("/api/save-answer")
async def save_answer(body: SaveAnswerBody, ctx: SessionContext = Depends(get_context)):
    exam = _require_exam(ctx)
    if not format_user_answer(body.answer).strip():
        raise HTTPException(status_code=400, detail="답안이 비어 있습니다.")
    try:
        state = exam.submit_answer(body.question_id, body.answer)
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QuestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True, "answered_count": len(state.answers)}


@router.post("/api/navigate")
async def navigate(body: NavigateBody, ctx: SessionContext = Depends(get_context)):
    exam = _require_exam(ctx)
    try:
        idx = exam.navigate(body.index)
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"index": idx, "ok": True}


@router.post("/api/submit-exam")
async def submit_exam(ctx: SessionContext = Depends(get_context)):
    exam = _require_exam(ctx)
    try:
        # 저장은 완료 이벤트 구독자에서 동기적으로 처리된다
        result = await asyncio.to_thread(exam.complete)
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "score": result.exam_state.score.total,
        "percentage": result.percentage,
        "passed": result.passed,
        "saved": ctx.saved,
        "ok": True,
    }


@router.get("/api/results")
async def get_results(ctx: SessionContext = Depends(get_context)):
    exam = _require_exam(ctx)
    result = exam.result
    if result is None:
        raise HTTPException(status_code=400, detail="시험이 아직 제출되지 않았습니다.")

    state = result.exam_state
    paper = exam.paper
    wrong_ids = set(state.wrong_question_ids)
    wrong_data = []
    for q in paper.questions:
        if q.id not in wrong_ids:
            continue
        d = _question_to_dict(q, include_answer=True)
        answer = state.answers.get(q.id)
        d["user_answer"] = format_user_answer(answer.user_answer) if answer else ""
        wrong_data.append(d)

    return {
        "exam_id": paper.id,
        "score": state.score.model_dump(),
        "total_score": paper.total_score,
        "percentage": result.percentage,
        "passed": result.passed,
        "message": result.message,
        "total": len(paper.questions),
        "correct_count": len(paper.questions) - len(wrong_ids),
        "incorrect_count": len(wrong_ids),
        "unanswered_count": sum(1 for q in paper.questions if q.id not in state.answers),
        "type_scores": calculate_type_breakdown(paper, state.answers),
        "wrong_questions": wrong_data,
        "start_time": state.start_time,
        "end_time": state.end_time,
        "saved": ctx.saved,
        "save_error": ctx.save_error or None,
    }


# ── 기록 조회 (DB) ───────────────────────────────────────────────────────────
# 동기 SQLAlchemy 쿼리를 쓰므로 일반 def 로 두어 스레드풀에서 실행

@router.get("/api/wrong-questions")
def wrong_questions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[QuestionType] = None,
    ctx: SessionContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    records, pagination = crud.get_wrong_questions(
        db, ctx.user_id, page, limit, type.value if type else None
    )
    return {
        "wrong_questions": [r.model_dump(mode="json") for r in records],
        "pagination": pagination.model_dump(),
    }


@router.get("/api/stats")
def user_stats(ctx: SessionContext = Depends(get_context), db: Session = Depends(get_db)):
    return crud.get_user_stats(db, ctx.user_id)


@router.get("/api/history")
def exam_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ctx: SessionContext = Depends(get_context),
    db: Session = Depends(get_db),
):
    records, pagination = crud.get_exam_history(db, ctx.user_id, page, limit)
    return {"records": records, "pagination": pagination.model_dump()}


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(request.state.session_id)
    return {"ok": True}
