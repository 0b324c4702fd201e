import os
import random
from datetime import datetime, timezone

import pytest

from config import DATA_DIR
from exam_cbt.db.database import init_db, make_engine, make_session_factory
from exam_cbt.models.question_model import ExamPaper, Question, QuestionType, score_for


@pytest.fixture
def bank_text():
    with open(os.path.join(DATA_DIR, "basic.md"), encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def applied_text():
    with open(os.path.join(DATA_DIR, "questionBank.md"), encoding="utf-8") as f:
        return f.read()


@pytest.fixture
def rng():
    return random.Random(20241019)


@pytest.fixture
def make_question():
    def _make(qid, q_type=QuestionType.SINGLE, answer="A", text=None, options=None):
        if options is None:
            options = ["对", "错"] if q_type == QuestionType.TRUE_FALSE else ["甲", "乙", "丙", "丁"]
        return Question(
            id=qid,
            type=q_type,
            category="测试",
            question_text=text or f"题干 {qid}",
            options=options,
            correct_answer=answer,
            score=score_for(q_type),
        )
    return _make


@pytest.fixture
def make_paper():
    def _make(questions, paper_id="exam_test"):
        return ExamPaper(
            id=paper_id,
            questions=questions,
            total_score=sum(q.score for q in questions),
            generated_at=datetime.now(timezone.utc),
        )
    return _make


@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    init_db(engine)
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
