"""
models/session_state.py

시험 진행 상태를 담는 OMR 카드 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

import time
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class ExamStatus(str, Enum):
    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"


class Answer(BaseModel):
    """문항별 응답. 같은 문항에 다시 답하면 덮어쓴다."""

    question_id: str
    user_answer: Union[str, List[str]]
    is_correct: bool = False
    timestamp: float = Field(default_factory=time.time)


class ExamScore(BaseModel):
    total: float = 0.0
    single_choice: float = 0.0
    true_false: float = 0.0
    multiple_choice: float = 0.0


class ExamState(BaseModel):
    """
    사용자의 시험 세션 전체 상태를 표현하는 모델.

    Attributes:
        status:                 notStarted / inProgress / completed.
        start_time:             시험 시작 시각 (time.time() 기준 Unix timestamp).
        end_time:               종료 시각. 완료 전에는 None.
        time_limit_ms:          제한 시간 (밀리초).
        time_remaining_ms:      남은 시간 (밀리초). 1초 틱마다 감소.
        current_question_index: 현재 풀고 있는 문제의 인덱스 (0-based).
        answers:                사용자 답안지. {question.id: Answer}
        score:                  유형별 득점.
        wrong_question_ids:     오답 + 미응답 문항 ID (시험지 순서, 중복 없음).
    """

    status: ExamStatus = Field(
        default=ExamStatus.NOT_STARTED,
        description="시험 진행 상태"
    )
    start_time: float = Field(
        default_factory=time.time,
        description="시험 시작 시각 (Unix timestamp, time.time() 기준)"
    )
    end_time: Optional[float] = Field(
        default=None,
        description="시험 종료 시각"
    )
    time_limit_ms: int = Field(
        default=90 * 60 * 1000,
        ge=0,
        description="제한 시간 (밀리초)"
    )
    time_remaining_ms: int = Field(
        default=90 * 60 * 1000,
        ge=0,
        description="남은 시간 (밀리초)"
    )
    current_question_index: int = Field(
        default=0,
        ge=0,
        description="현재 풀고 있는 문제 인덱스 (0-based)"
    )
    answers: Dict[str, Answer] = Field(
        default_factory=dict,
        description="사용자 답안지. key: question.id"
    )
    score: ExamScore = Field(default_factory=ExamScore)
    wrong_question_ids: List[str] = Field(
        default_factory=list,
        description="오답/미응답 문항 ID"
    )


class ExamResult(BaseModel):
    exam_state: ExamState
    percentage: float
    passed: bool
    message: str
