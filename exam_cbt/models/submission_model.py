from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from exam_cbt.models.question_model import QuestionType


class WrongQuestionIn(BaseModel):
    """제출 페이로드에 담기는 오답 문항 스냅샷."""
    id: str
    type: QuestionType
    category: str = ""
    question_text: str
    options: List[str]
    correct_answer: str
    user_answer: str = ""
    score: float


class ExamSubmission(BaseModel):
    """시험 결과 저장 요청 (examId, score, totalScore, startTime, endTime, wrongQuestions)."""
    exam_id: str = Field(..., min_length=1)
    score: float = Field(..., ge=0)
    total_score: float = Field(..., gt=0)
    start_time: datetime
    end_time: datetime
    question_count: int = Field(..., ge=0)
    wrong_questions: List[WrongQuestionIn] = Field(default_factory=list)


class WrongQuestionRecord(BaseModel):
    """오답 조회 결과. 시험 정보(점수/백분율/일시)가 조인되어 있다."""
    id: int
    question_id: str
    type: str
    category: str = ""
    question_text: str
    options: List[str]
    correct_answer: str
    user_answer: str = ""
    score: float
    exam_score: float
    exam_percentage: float
    exam_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
