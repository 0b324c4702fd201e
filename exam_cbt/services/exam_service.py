"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Union

from config import FULL_MARKS, PASS_SCORE, PERCENT_OF_PAPER_TOTAL
from exam_cbt.models.question_model import ExamPaper, Question, QuestionType
from exam_cbt.models.session_state import Answer, ExamResult, ExamScore
from exam_cbt.models.submission_model import ExamSubmission, WrongQuestionIn

UserAnswer = Union[str, List[str]]

_SEPARATOR_RE = re.compile(r"[,，、]")
# 보기 문자 2개 이상 + 임의 구분자 ("AC", "A C", "A；C", "A/C")
_LETTER_LIST_RE = re.compile(r"^[A-H](?:[\s,，、;；/]*[A-H])+$")
_LETTER_RE = re.compile(r"[A-H]")

PASS_MESSAGE = "恭喜通过考试"
FAIL_MESSAGE = "继续加油"


def answer_tokens(answer: Optional[UserAnswer]) -> List[str]:
    """
    정답/응답을 토큰 리스트로 변환.

    - 리스트는 원소 그대로 (공백 제거, 빈 값 제외)
    - 보기 문자만으로 이루어진 문자열은 구분자(공백·쉼표·세미콜론·슬래시)와 무관하게 문자 단위로 분리
    - 그 외 문자열은 쉼표(, ， 、)로 분리
    """
    if answer is None:
        return []
    if isinstance(answer, (list, tuple)):
        return [str(a).strip() for a in answer if str(a).strip()]

    s = str(answer).strip()
    if not s:
        return []
    if _LETTER_LIST_RE.match(s):
        return _LETTER_RE.findall(s)
    if _SEPARATOR_RE.search(s):
        return [p.strip() for p in _SEPARATOR_RE.split(s) if p.strip()]
    return [s]


def check_answer(question: Question, user_answer: Optional[UserAnswer]) -> bool:
    """
    문항 하나의 정답 여부.

    다중 선택: 응답·정답을 집합으로 보고 크기가 같고 응답이 모두 정답에 포함될 때 정답.
    단일/판단: 응답(리스트면 첫 원소)이 정답과 정확히 일치할 때 정답.
    """
    if question.type == QuestionType.MULTIPLE:
        submitted = set(answer_tokens(user_answer))
        correct = set(answer_tokens(question.correct_answer))
        if not submitted:
            return False
        return len(submitted) == len(correct) and all(a in correct for a in submitted)

    if isinstance(user_answer, (list, tuple)):
        user_answer = user_answer[0] if user_answer else None
    return user_answer is not None and user_answer == question.correct_answer


def calculate_score(paper: ExamPaper, answers: Mapping[str, Answer]) -> ExamScore:
    """
    응답한 문항 중 정답인 문항의 배점을 총점과 유형별 점수에 더한다.
    미응답 문항은 0점.
    """
    score = ExamScore()
    for q in paper.questions:
        answer = answers.get(q.id)
        if answer is None or not answer.is_correct:
            continue
        score.total += q.score
        if q.type == QuestionType.SINGLE:
            score.single_choice += q.score
        elif q.type == QuestionType.TRUE_FALSE:
            score.true_false += q.score
        else:
            score.multiple_choice += q.score
    return score


def get_wrong_question_ids(paper: ExamPaper, answers: Mapping[str, Answer]) -> List[str]:
    """
    오답 문항 ID 리스트 (오답 노트용).

    오답 판정 기준:
    - 사용자가 선택한 답이 정답과 다른 경우
    - 사용자가 아예 응답하지 않은 경우 (미응답 포함)

    Returns:
        시험지 순서를 유지한 ID 리스트. 중복 없음.
    """
    wrong: List[str] = []
    for q in paper.questions:
        answer = answers.get(q.id)
        if (answer is None or not answer.is_correct) and q.id not in wrong:
            wrong.append(q.id)
    return wrong


def calculate_percentage(
    score: ExamScore,
    paper: ExamPaper,
    relative_to_paper: bool = PERCENT_OF_PAPER_TOTAL,
) -> float:
    """
    백분율 점수.

    기본은 고정 만점(FULL_MARKS=100, 단일 50 / 판단 20 / 다중 30) 기준.
    relative_to_paper=True 이면 시험지 실제 총점 기준.
    """
    denominator = paper.total_score if relative_to_paper else FULL_MARKS
    if denominator <= 0:
        return 0.0
    return round(score.total / denominator * 100, 2)


def is_passed(percentage: float, pass_score: float = PASS_SCORE) -> bool:
    """
    합격 여부를 반환한다.

    Args:
        percentage: calculate_percentage()가 반환한 점수 (0.0 ~ 100.0).
        pass_score: 합격 기준 점수 (기본값 60.0점).
    """
    return percentage >= pass_score


def calculate_type_breakdown(
    paper: ExamPaper,
    answers: Mapping[str, Answer],
) -> List[Dict[str, object]]:
    """
    유형별 성적을 계산하여 반환한다.

    Returns:
        [{"type": str, "total": int, "correct": int, "incorrect": int,
          "unanswered": int, "earned": float, "possible": float}, ...]
        단일 → 판단 → 다중 순서. 시험지에 없는 유형은 생략.
    """
    buckets: Dict[QuestionType, Dict[str, float]] = {}
    for q in paper.questions:
        b = buckets.setdefault(
            q.type,
            {"total": 0, "correct": 0, "incorrect": 0, "unanswered": 0,
             "earned": 0.0, "possible": 0.0},
        )
        b["total"] += 1
        b["possible"] += q.score
        answer = answers.get(q.id)
        if answer is None:
            b["unanswered"] += 1
        elif answer.is_correct:
            b["correct"] += 1
            b["earned"] += q.score
        else:
            b["incorrect"] += 1

    order = (QuestionType.SINGLE, QuestionType.TRUE_FALSE, QuestionType.MULTIPLE)
    return [{"type": t.value, **buckets[t]} for t in order if t in buckets]


def build_result(paper: ExamPaper, state) -> ExamResult:
    """완료된 ExamState 로 결과(백분율, 합격 여부, 메시지)를 만든다."""
    percentage = calculate_percentage(state.score, paper)
    passed = is_passed(percentage)
    return ExamResult(
        exam_state=state,
        percentage=percentage,
        passed=passed,
        message=PASS_MESSAGE if passed else FAIL_MESSAGE,
    )


def format_user_answer(user_answer: Optional[UserAnswer]) -> str:
    if user_answer is None:
        return ""
    if isinstance(user_answer, (list, tuple)):
        return ",".join(str(a) for a in user_answer)
    return str(user_answer)


def build_submission(result: ExamResult, paper: ExamPaper) -> ExamSubmission:
    """결과 저장용 페이로드. 오답 문항에는 사용자가 고른 답을 함께 담는다."""
    state = result.exam_state
    wrong_ids = set(state.wrong_question_ids)
    wrong_questions = []
    for q in paper.questions:
        if q.id not in wrong_ids:
            continue
        answer = state.answers.get(q.id)
        wrong_questions.append(WrongQuestionIn(
            id=q.id,
            type=q.type,
            category=q.category,
            question_text=q.question_text,
            options=list(q.options),
            correct_answer=q.correct_answer,
            user_answer=format_user_answer(answer.user_answer if answer else None),
            score=q.score,
        ))

    end_time = state.end_time if state.end_time is not None else state.start_time
    return ExamSubmission(
        exam_id=paper.id,
        score=state.score.total,
        total_score=paper.total_score,
        start_time=datetime.fromtimestamp(state.start_time, tz=timezone.utc),
        end_time=datetime.fromtimestamp(end_time, tz=timezone.utc),
        question_count=len(paper.questions),
        wrong_questions=wrong_questions,
    )
