from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from exam_cbt.db import crud, models
from exam_cbt.models.question_model import QuestionType
from exam_cbt.models.submission_model import ExamSubmission, WrongQuestionIn


def _wrong(qid, q_type=QuestionType.SINGLE, user_answer="B"):
    return WrongQuestionIn(
        id=qid,
        type=q_type,
        category="一、单选题",
        question_text=f"题干 {qid}",
        options=["对", "错"] if q_type == QuestionType.TRUE_FALSE else ["甲", "乙"],
        correct_answer="对" if q_type == QuestionType.TRUE_FALSE else "A",
        user_answer=user_answer,
        score=1.5 if q_type == QuestionType.MULTIPLE else 1.0,
    )


def _submission(exam_id="exam_1", score=70.0, wrong=None):
    start = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    return ExamSubmission(
        exam_id=exam_id,
        score=score,
        total_score=100.0,
        start_time=start,
        end_time=start + timedelta(minutes=45),
        question_count=100,
        wrong_questions=wrong or [],
    )


def test_save_submission_writes_record_wrong_questions_and_stats(db):
    record = crud.save_exam_submission(
        db, "user-1", _submission(wrong=[_wrong("q_1"), _wrong("q_2", QuestionType.TRUE_FALSE, "错")])
    )

    assert record.id is not None
    assert record.percentage == 70.0
    assert record.passed is True
    assert record.time_used == 45 * 60
    assert db.query(models.WrongQuestion).count() == 2

    stats = crud.get_user_stats(db, "user-1")
    assert stats["total_exams"] == 1
    assert stats["total_questions"] == 100
    assert stats["total_wrong"] == 2
    assert stats["best_score"] == 70.0
    assert stats["unique_wrong_questions"] == 2


def test_stats_accumulate_over_exams(db):
    crud.save_exam_submission(db, "user-1", _submission("exam_1", 40.0, [_wrong("q_1")]))
    crud.save_exam_submission(db, "user-1", _submission("exam_2", 80.0, [_wrong("q_1")]))

    stats = crud.get_user_stats(db, "user-1")
    assert stats["total_exams"] == 2
    assert stats["avg_score"] == 60.0
    assert stats["best_score"] == 80.0
    assert stats["total_wrong"] == 2
    assert stats["unique_wrong_questions"] == 1


def test_stats_for_unknown_user(db):
    stats = crud.get_user_stats(db, "nobody")
    assert stats["total_exams"] == 0
    assert stats["last_exam_date"] is None


def test_wrong_questions_joined_with_exam_context_and_paginated(db):
    crud.save_exam_submission(db, "user-1", _submission("exam_1", 50.0, [_wrong("a1"), _wrong("a2")]))
    crud.save_exam_submission(
        db, "user-1",
        _submission("exam_2", 90.0, [_wrong("b1", QuestionType.MULTIPLE), _wrong("b2")]),
    )
    crud.save_exam_submission(db, "user-2", _submission("exam_3", 10.0, [_wrong("c1")]))

    records, pagination = crud.get_wrong_questions(db, "user-1", page=1, limit=3)
    assert pagination.total == 4
    assert pagination.total_pages == 2
    assert [r.question_id for r in records] == ["b2", "b1", "a2"]
    assert records[0].exam_score == 90.0
    assert records[0].exam_percentage == 90.0
    assert records[0].exam_date is not None

    page2, _ = crud.get_wrong_questions(db, "user-1", page=2, limit=3)
    assert [r.question_id for r in page2] == ["a1"]

    multiples, pagination = crud.get_wrong_questions(db, "user-1", question_type="multiple")
    assert [r.question_id for r in multiples] == ["b1"]
    assert pagination.total == 1

    # 알 수 없는 유형 필터는 무시
    everything, _ = crud.get_wrong_questions(db, "user-1", question_type="essay")
    assert len(everything) == 4


def test_true_false_records_normalized_on_read(db):
    record = crud.save_exam_submission(db, "user-1", _submission())
    db.add(models.WrongQuestion(
        user_id="user-1",
        exam_record_id=record.id,
        question_id="legacy_1",
        question_type="trueFalse",
        question_text="旧数据",
        question_options=["正确", "错误", "对"],
        correct_answer="正确",
        user_answer="F",
        question_score=1.0,
    ))
    db.commit()

    records, _ = crud.get_wrong_questions(db, "user-1")
    assert records[0].options == ["对", "错"]
    assert records[0].correct_answer == "对"
    assert records[0].user_answer == "错"


def test_failed_submission_rolls_back_everything(db):
    def _fail_on_stats(session, flush_context, instances):
        if any(isinstance(obj, models.UserStats) for obj in session.new):
            raise SQLAlchemyError("stats update failed")

    event.listen(db, "before_flush", _fail_on_stats)
    with pytest.raises(SQLAlchemyError):
        crud.save_exam_submission(db, "user-1", _submission(wrong=[_wrong("q_1")]))
    event.remove(db, "before_flush", _fail_on_stats)

    assert db.query(models.ExamRecord).count() == 0
    assert db.query(models.WrongQuestion).count() == 0


def test_exam_history(db):
    crud.save_exam_submission(db, "user-1", _submission("exam_1", 30.0))
    crud.save_exam_submission(db, "user-1", _submission("exam_2", 75.0))

    records, pagination = crud.get_exam_history(db, "user-1", page=1, limit=10)
    assert pagination.total == 2
    assert [r["exam_id"] for r in records] == ["exam_2", "exam_1"]
    assert records[0]["passed"] is True
    assert records[1]["passed"] is False


def test_submission_requires_question_count():
    payload = _submission().model_dump(exclude={"question_count"})
    with pytest.raises(ValidationError):
        ExamSubmission(**payload)
