"""
services/bank_parser.py

마크다운 형식 문제은행 텍스트 파싱 서비스.
Public API:
  - parse_question_bank(raw_text, id_prefix) -> QuestionBank : 문제은행 파싱
  - normalize_true_false(token) -> str                        : 판단 토큰 정규화
  - canonical_true_false_options(options) -> List[str]        : 판단 보기 정규화

설계 원칙:
- 사람이 작성한 문제은행은 구분자·전각 문자·보기 누락이 제각각이므로 관대하게 매칭
- 줄 단위 분류 → 불변 상태(_ParseState)를 줄마다 새로 만들어 넘기는 fold 구조
- 파싱은 절대 예외를 던지지 않는다. 형식이 깨진 문항은 해당 문항만 스킵
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from pydantic import ValidationError

from exam_cbt.models.question_model import (
    FALSE_TOKEN,
    TRUE_FALSE_OPTIONS,
    TRUE_TOKEN,
    Question,
    QuestionBank,
    QuestionType,
    score_for,
)

logger = logging.getLogger(__name__)

# ── 줄 패턴 ──────────────────────────────────────────────────────────────────
# 숫자 뒤 구분자는 ASCII 마침표, 전각 마침표(．), 顿号(、), 괄호를 모두 허용
_HEADING_RE = re.compile(r"^#{2,}\s*")
_QUESTION_RE = re.compile(r"^\s*\d+[.、．)）]\s*")
_OPTION_RE = re.compile(r"^\s*[A-Ha-h][.、．)）\s]+")
_ANSWER_RE = re.compile(
    r"^\s*[（(【\[]?\s*(?:答案|正确答案|参考答案)\s*[)）】\]]?\s*[:：]?\s*"
)

_TRUE_RE = re.compile(r"^(对|正确|√|TRUE|T)$", re.IGNORECASE)
_FALSE_RE = re.compile(r"^(错|错误|×|FALSE|F)$", re.IGNORECASE)
_LETTER_RE = re.compile(r"[A-H]", re.IGNORECASE)
_SINGLE_LETTER_RE = re.compile(r"^[A-H]$")

_TRUE_FALSE_CATEGORY_RE = re.compile(r"判断|是非")
_TRUE_FALSE_TEXT_RE = re.compile(r"判断题|对错")
_MULTIPLE_RE = re.compile(r"多选")

_IDLE = "idle"
_IN_QUESTION = "in_question"


@dataclass(frozen=True)
class _ParseState:
    """한 문항을 읽는 동안의 파싱 상태. 줄마다 replace()로 새 상태를 만든다."""

    phase: str = _IDLE
    category: str = ""
    text_parts: Tuple[str, ...] = ()
    options: Tuple[str, ...] = ()
    answer: str = ""
    question_type: QuestionType = QuestionType.SINGLE


# ══════════════════════════════════════════════════════════════════════════════
# Public API
# ══════════════════════════════════════════════════════════════════════════════

def parse_question_bank(raw_text: str, id_prefix: str = "q") -> QuestionBank:
    """
    문제은행 텍스트 → QuestionBank.

    Args:
        raw_text:  UTF-8 마크다운 문제은행 원문.
        id_prefix: 문항 ID 접두사. 서로 다른 문제은행을 섞을 때 ID 충돌 방지용.

    Returns:
        유효한 문항만 담긴 QuestionBank. 입력이 비어 있으면 빈 QuestionBank.
    """
    questions: List[Question] = []
    state = _ParseState()

    for raw_line in (raw_text or "").splitlines():
        state = _consume_line(state, raw_line.strip(), questions, id_prefix)

    # 마지막 문항 마무리
    _emit(state, questions, id_prefix)

    logger.info(
        f"parse_question_bank[{id_prefix}]: 총 {len(questions)}개 문항 "
        f"(단일 {_count(questions, QuestionType.SINGLE)}, "
        f"판단 {_count(questions, QuestionType.TRUE_FALSE)}, "
        f"다중 {_count(questions, QuestionType.MULTIPLE)})"
    )
    return QuestionBank(questions=questions)


def normalize_true_false(token: str) -> str:
    """对/正确/√/TRUE/T → 对, 错/错误/×/FALSE/F → 错. 그 외는 공백만 제거해 반환."""
    s = str(token or "").strip()
    if _TRUE_RE.match(s):
        return TRUE_TOKEN
    if _FALSE_RE.match(s):
        return FALSE_TOKEN
    return s


def canonical_true_false_options(options: List[str]) -> List[str]:
    """
    판단 문항 보기 정규화.

    - 표준 토큰이 하나라도 있으면 정확히 [对, 错] 두 항으로 통일
      (원문의 A.对/B.错 과 자동 보충분이 겹쳐 중복되는 것을 방지)
    - 표준 토큰이 없으면 등장 순서를 유지한 채 중복만 제거
    - 보기가 아예 없으면 [对, 错] 보충
    """
    if not options:
        return list(TRUE_FALSE_OPTIONS)

    mapped = [normalize_true_false(o) for o in options]
    if TRUE_TOKEN in mapped or FALSE_TOKEN in mapped:
        return list(TRUE_FALSE_OPTIONS)

    seen = set()
    deduped = []
    for opt in mapped:
        if opt and opt not in seen:
            seen.add(opt)
            deduped.append(opt)
    return deduped


# ══════════════════════════════════════════════════════════════════════════════
# 줄 분류 / 상태 전이
# ══════════════════════════════════════════════════════════════════════════════

def _consume_line(
    state: _ParseState,
    line: str,
    questions: List[Question],
    id_prefix: str,
) -> _ParseState:
    """한 줄을 분류하고 다음 상태를 반환. 문항 경계에서는 questions에 결과를 추가."""
    if not line:
        return state

    if _HEADING_RE.match(line):
        # 열린 문항 중간의 헤딩은 문항을 끝내지 않는다
        return replace(state, category=_HEADING_RE.sub("", line).strip())

    if _QUESTION_RE.match(line):
        _emit(state, questions, id_prefix)
        text = _QUESTION_RE.sub("", line).strip()
        return _ParseState(
            phase=_IN_QUESTION,
            category=state.category,
            text_parts=(text,) if text else (),
            question_type=_infer_type(state.category, text),
        )

    if state.phase != _IN_QUESTION:
        logger.debug(f"문항 시작 전 줄 무시: {line[:40]!r}")
        return state

    if _OPTION_RE.match(line):
        return replace(state, options=state.options + (_OPTION_RE.sub("", line).strip(),))

    if _ANSWER_RE.match(line):
        return replace(state, answer=_ANSWER_RE.sub("", line).strip().upper())

    # 여러 줄에 걸친 문제 본문
    return replace(state, text_parts=state.text_parts + (line,))


def _infer_type(category: str, text: str) -> QuestionType:
    """헤딩/본문 키워드로 유형 추정. 정답 근거가 있으면 마무리 단계에서 덮어쓴다."""
    if _TRUE_FALSE_CATEGORY_RE.search(category) or _TRUE_FALSE_TEXT_RE.search(text):
        return QuestionType.TRUE_FALSE
    if _MULTIPLE_RE.search(category) or _MULTIPLE_RE.search(text):
        return QuestionType.MULTIPLE
    return QuestionType.SINGLE


# ══════════════════════════════════════════════════════════════════════════════
# 문항 마무리
# ══════════════════════════════════════════════════════════════════════════════

def _emit(state: _ParseState, questions: List[Question], id_prefix: str) -> None:
    if state.phase != _IN_QUESTION:
        return
    question = _finalize(state, f"{id_prefix}_{len(questions) + 1}")
    if question is not None:
        questions.append(question)


def _finalize(state: _ParseState, question_id: str) -> Optional[Question]:
    """
    열린 문항을 Question으로 확정. 필수 항목이 비었거나 검증에 실패하면 None.

    정답 근거 우선 규칙:
    1. 정답이 판단 토큰이면 키워드 추정과 무관하게 판단 문항으로 확정
    2. 판단 문항은 보기를 표준 2항으로 정규화
    3. 단일 선택인데 정답 문자가 2개 이상이면 다중 선택으로 승격
       (다중 → 단일 강등은 하지 않는다)
    """
    text = " ".join(state.text_parts).strip()
    options = list(state.options)
    answer = state.answer
    q_type = state.question_type

    tf_answer = normalize_true_false(answer)
    if answer and tf_answer in TRUE_FALSE_OPTIONS and not _is_option_letter(answer, options):
        q_type = QuestionType.TRUE_FALSE
        answer = tf_answer
        options = list(TRUE_FALSE_OPTIONS)
    elif q_type == QuestionType.TRUE_FALSE:
        answer = _resolve_letter_answer(answer, options)
        options = canonical_true_false_options(options)

    letters = _distinct_letters(answer)
    if q_type == QuestionType.SINGLE and len(letters) > 1:
        q_type = QuestionType.MULTIPLE
    if q_type == QuestionType.MULTIPLE and letters:
        # "A C", "A；C", "C/A" → "AC"
        answer = "".join(sorted(letters))

    if not text or not options or not answer:
        logger.debug(
            f"{question_id}: 필수 항목 누락으로 제외 "
            f"(본문={bool(text)}, 보기={len(options)}, 정답={bool(answer)})"
        )
        return None

    try:
        return Question(
            id=question_id,
            type=q_type,
            category=state.category,
            question_text=text,
            options=options,
            correct_answer=answer,
            score=score_for(q_type),
        )
    except ValidationError as e:
        logger.warning(f"{question_id}: Question 생성 실패 — {e.errors()[0].get('msg', e)}")
        return None


def _resolve_letter_answer(answer: str, options: List[str]) -> str:
    """판단 문항 정답이 'A'처럼 보기 문자이면 해당 보기의 표준 토큰으로 치환."""
    if not _SINGLE_LETTER_RE.match(answer):
        return answer
    idx = ord(answer) - ord("A")
    if idx < len(options):
        token = normalize_true_false(options[idx])
        if token in TRUE_FALSE_OPTIONS:
            return token
    return answer


def _is_option_letter(answer: str, options: List[str]) -> bool:
    """'F' 정답이 실제 여섯 번째 보기를 가리키는 경우는 판단 토큰으로 보지 않는다."""
    return bool(_SINGLE_LETTER_RE.match(answer)) and ord(answer) - ord("A") < len(options)


def _distinct_letters(answer: str) -> List[str]:
    letters: List[str] = []
    for ch in _LETTER_RE.findall(answer or ""):
        ch = ch.upper()
        if ch not in letters:
            letters.append(ch)
    return letters


def _count(questions: List[Question], question_type: QuestionType) -> int:
    return sum(1 for q in questions if q.type == question_type)
