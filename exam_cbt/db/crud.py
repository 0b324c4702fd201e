import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import PASS_SCORE
from exam_cbt.db import models
from exam_cbt.models.question_model import QuestionType
from exam_cbt.models.submission_model import ExamSubmission, Pagination, WrongQuestionRecord
from exam_cbt.services.bank_parser import canonical_true_false_options, normalize_true_false

logger = logging.getLogger(__name__)

_VALID_TYPES = {t.value for t in QuestionType}


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def save_exam_submission(db: Session, user_id: str, submission: ExamSubmission) -> models.ExamRecord:
    """
    시험 기록 + 오답 + 사용자 통계를 하나의 트랜잭션으로 저장한다.
    어느 단계든 실패하면 전부 롤백하고 예외를 그대로 올린다.
    """
    start_time = _naive_utc(submission.start_time)
    end_time = _naive_utc(submission.end_time)
    percentage = round(submission.score / submission.total_score * 100, 2)

    try:
        record = models.ExamRecord(
            user_id=user_id,
            exam_id=submission.exam_id,
            score=submission.score,
            total_score=submission.total_score,
            percentage=percentage,
            passed=percentage >= PASS_SCORE,
            start_time=start_time,
            end_time=end_time,
            time_used=max(0, int((end_time - start_time).total_seconds())),
        )
        db.add(record)
        db.flush()

        for q in submission.wrong_questions:
            db.add(models.WrongQuestion(
                user_id=user_id,
                exam_record_id=record.id,
                question_id=q.id,
                question_type=q.type.value,
                question_category=q.category or "",
                question_text=q.question_text,
                question_options=list(q.options),
                correct_answer=q.correct_answer,
                user_answer=q.user_answer or "",
                question_score=q.score,
            ))

        stats = db.query(models.UserStats).filter(models.UserStats.user_id == user_id).one_or_none()
        if stats is None:
            stats = models.UserStats(
                user_id=user_id, total_exams=0, total_questions=0, total_wrong=0,
                avg_score=0.0, best_score=0.0,
            )
            db.add(stats)
        db.flush()

        stats.total_exams += 1
        stats.total_questions += submission.question_count
        stats.total_wrong += len(submission.wrong_questions)
        stats.avg_score = db.query(func.avg(models.ExamRecord.score)).filter(
            models.ExamRecord.user_id == user_id
        ).scalar() or 0.0
        stats.best_score = db.query(func.max(models.ExamRecord.score)).filter(
            models.ExamRecord.user_id == user_id
        ).scalar() or 0.0
        stats.last_exam_date = end_time

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"시험 결과 저장 실패 (user={user_id}, exam={submission.exam_id}): {e}")
        raise

    db.refresh(record)
    logger.info(
        f"시험 결과 저장: user={user_id} exam={submission.exam_id} "
        f"record={record.id} 오답 {len(submission.wrong_questions)}개"
    )
    return record


def get_wrong_questions(
    db: Session,
    user_id: str,
    page: int = 1,
    limit: int = 20,
    question_type: Optional[str] = None,
) -> Tuple[List[WrongQuestionRecord], Pagination]:
    """오답 기록 페이지 조회 (최신순). 시험 점수/백분율/일시를 함께 돌려준다."""
    page = max(1, page)
    limit = max(1, limit)

    query = (
        db.query(models.WrongQuestion, models.ExamRecord)
        .join(models.ExamRecord, models.WrongQuestion.exam_record_id == models.ExamRecord.id)
        .filter(models.WrongQuestion.user_id == user_id)
    )
    if question_type and question_type in _VALID_TYPES:
        query = query.filter(models.WrongQuestion.question_type == question_type)

    total = query.count()
    rows = (
        query.order_by(models.WrongQuestion.created_at.desc(), models.WrongQuestion.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    records = [_to_wrong_record(wq, er) for wq, er in rows]
    pagination = Pagination(
        page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
    )
    return records, pagination


def _to_wrong_record(wq: models.WrongQuestion, er: models.ExamRecord) -> WrongQuestionRecord:
    options = list(wq.question_options or [])
    correct_answer = wq.correct_answer
    user_answer = wq.user_answer or ""

    # 예전에 저장된 판단 문항도 표준 보기/토큰으로 맞춰서 돌려준다
    if wq.question_type == QuestionType.TRUE_FALSE.value:
        options = canonical_true_false_options(options) or canonical_true_false_options([])
        correct_answer = normalize_true_false(correct_answer)
        user_answer = normalize_true_false(user_answer)

    return WrongQuestionRecord(
        id=wq.id,
        question_id=wq.question_id,
        type=wq.question_type,
        category=wq.question_category or "",
        question_text=wq.question_text,
        options=options,
        correct_answer=correct_answer,
        user_answer=user_answer,
        score=wq.question_score,
        exam_score=er.score,
        exam_percentage=er.percentage,
        exam_date=er.created_at,
        created_at=wq.created_at,
    )


def get_user_stats(db: Session, user_id: str) -> dict:
    stats = db.query(models.UserStats).filter(models.UserStats.user_id == user_id).one_or_none()
    unique_wrong = db.query(
        func.count(func.distinct(models.WrongQuestion.question_text))
    ).filter(models.WrongQuestion.user_id == user_id).scalar() or 0

    if stats is None:
        return {
            "total_exams": 0,
            "total_questions": 0,
            "total_wrong": 0,
            "avg_score": 0.0,
            "best_score": 0.0,
            "unique_wrong_questions": unique_wrong,
            "last_exam_date": None,
        }
    return {
        "total_exams": stats.total_exams,
        "total_questions": stats.total_questions,
        "total_wrong": stats.total_wrong,
        "avg_score": round(stats.avg_score or 0.0, 2),
        "best_score": stats.best_score,
        "unique_wrong_questions": unique_wrong,
        "last_exam_date": stats.last_exam_date,
    }


def get_exam_history(
    db: Session, user_id: str, page: int = 1, limit: int = 10
) -> Tuple[List[dict], Pagination]:
    page = max(1, page)
    limit = max(1, limit)
    query = db.query(models.ExamRecord).filter(models.ExamRecord.user_id == user_id)
    total = query.count()
    rows = (
        query.order_by(models.ExamRecord.created_at.desc(), models.ExamRecord.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    records = [
        {
            "id": r.id,
            "exam_id": r.exam_id,
            "score": r.score,
            "total_score": r.total_score,
            "percentage": r.percentage,
            "passed": r.passed,
            "start_time": r.start_time,
            "end_time": r.end_time,
            "time_used": r.time_used,
            "created_at": r.created_at,
        }
        for r in rows
    ]
    return records, Pagination(
        page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
    )
