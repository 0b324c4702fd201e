from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TRUE_TOKEN = "对"
FALSE_TOKEN = "错"
TRUE_FALSE_OPTIONS = [TRUE_TOKEN, FALSE_TOKEN]


class QuestionType(str, Enum):
    """문항 유형. 값은 프런트엔드와 주고받는 문자열 그대로."""

    SINGLE = "single"
    TRUE_FALSE = "trueFalse"
    MULTIPLE = "multiple"


# 시험지 블록 순서: 단일 선택 → 판단 → 다중 선택
TYPE_ORDER = {
    QuestionType.SINGLE: 0,
    QuestionType.TRUE_FALSE: 1,
    QuestionType.MULTIPLE: 2,
}


def score_for(question_type: QuestionType) -> float:
    """유형별 배점. 다중 선택 1.5점, 나머지 1점 (문항별 조정 없음)."""
    return 1.5 if question_type == QuestionType.MULTIPLE else 1.0


class Question(BaseModel):
    """
    문제은행 문항 모델
    Pydantic v2 적용
    """
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    id: str = Field(
        ...,
        min_length=1,
        description="문항 ID (파싱 순서 기반, 예: basic_12)"
    )
    type: QuestionType = Field(
        ...,
        description="문항 유형 (single / trueFalse / multiple)"
    )
    category: str = Field(
        "",
        description="문제은행 소제목 (## 헤딩)"
    )
    question_text: str = Field(
        ...,
        min_length=1,
        description="문제 본문"
    )
    options: List[str] = Field(
        ...,
        min_length=1,
        description="보기 리스트 (원문 등장 순서)"
    )
    correct_answer: str = Field(
        ...,
        min_length=1,
        description="정답. 보기 문자(A~H) 조합 또는 판단 문항의 표준 토큰(对/错)"
    )
    score: float = Field(
        ...,
        gt=0,
        description="배점"
    )

    @field_validator("question_text", "correct_answer")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("빈 문자열은 허용되지 않습니다.")
        return v

    @model_validator(mode="after")
    def validate_true_false(self) -> "Question":
        """
        판단 문항은 보기가 정확히 표준 2항(对/错)이어야 하고,
        정답도 표준 토큰 중 하나여야 한다.
        """
        if self.type != QuestionType.TRUE_FALSE:
            return self
        if list(self.options) != TRUE_FALSE_OPTIONS:
            raise ValueError(f"판단 문항 보기({self.options})가 표준 2항이 아닙니다.")
        if self.correct_answer not in TRUE_FALSE_OPTIONS:
            raise ValueError(f"판단 문항 정답('{self.correct_answer}')이 표준 토큰이 아닙니다.")
        return self


class QuestionBank(BaseModel):
    """파싱 결과. 생성 후 변경 불가."""
    model_config = ConfigDict(frozen=True)

    questions: List[Question] = Field(default_factory=list)


class QuestionPools(BaseModel):
    """유형별 문항 풀."""
    single: List[Question] = Field(default_factory=list)
    true_false: List[Question] = Field(default_factory=list)
    multiple: List[Question] = Field(default_factory=list)

    def by_type(self, question_type: QuestionType) -> List[Question]:
        if question_type == QuestionType.SINGLE:
            return self.single
        if question_type == QuestionType.TRUE_FALSE:
            return self.true_false
        return self.multiple


class ExamQuotas(BaseModel):
    """유형별 출제 문항 수."""
    single: int = Field(50, ge=0)
    true_false: int = Field(20, ge=0)
    multiple: int = Field(30, ge=0)

    def for_type(self, question_type: QuestionType) -> int:
        if question_type == QuestionType.SINGLE:
            return self.single
        if question_type == QuestionType.TRUE_FALSE:
            return self.true_false
        return self.multiple


class ExamPaper(BaseModel):
    """
    한 번의 응시에 제시되는 시험지.

    Attributes:
        id:           시각 기반 + 난수 (동시 생성 시에도 고유).
        questions:    단일 → 판단 → 다중 순서로 고정된 문항 리스트.
        total_score:  문항 배점 합계.
        generated_at: 생성 시각 (UTC).
    """
    model_config = ConfigDict(frozen=True)

    id: str
    questions: List[Question]
    total_score: float
    generated_at: datetime

    def find_question(self, question_id: str):
        for q in self.questions:
            if q.id == question_id:
                return q
        return None
