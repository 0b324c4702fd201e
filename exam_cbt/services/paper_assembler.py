"""
services/paper_assembler.py

문항 풀 분할 및 시험지 조립.
Public API:
  - partition(bank) -> QuestionPools
  - assemble_paper(pools, quotas, fallback_pools, rng) -> ExamPaper
  - generate_exam_paper(difficulty, quotas, rng) -> ExamPaper

출제 규칙 (유형별 독립):
  1. 기본 풀을 섞은 뒤 min(할당량, 풀 크기)만큼 비복원 추출
  2. 부족하면 보충 풀에서 이미 뽑힌 본문과 겹치지 않는 문항으로 채움
  3. 그래도 부족하면 복원 추출로 할당량을 채움 (중복 허용, 짧은 시험지보다 낫다)
  4. 유형 내부 순서를 다시 섞음
시험지 순서는 항상 단일 → 판단 → 다중 블록.
"""

import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Set

from config import FALLBACK_DIFFICULTY
from exam_cbt.models.question_model import (
    TYPE_ORDER,
    ExamPaper,
    ExamQuotas,
    Question,
    QuestionBank,
    QuestionPools,
    QuestionType,
)
from exam_cbt.services.bank_loader import load_bank_text
from exam_cbt.services.bank_parser import parse_question_bank

logger = logging.getLogger(__name__)

_TYPE_SEQUENCE = (QuestionType.SINGLE, QuestionType.TRUE_FALSE, QuestionType.MULTIPLE)


def partition(bank: QuestionBank) -> QuestionPools:
    """문제은행을 유형별 풀로 분리한다. 검증은 파서가 이미 끝냈다."""
    return QuestionPools(
        single=[q for q in bank.questions if q.type == QuestionType.SINGLE],
        true_false=[q for q in bank.questions if q.type == QuestionType.TRUE_FALSE],
        multiple=[q for q in bank.questions if q.type == QuestionType.MULTIPLE],
    )


def assemble_paper(
    pools: QuestionPools,
    quotas: ExamQuotas,
    fallback_pools: Optional[QuestionPools] = None,
    rng: Optional[random.Random] = None,
) -> ExamPaper:
    """
    유형별 할당량을 정확히 채운 시험지를 조립한다.

    Args:
        pools:          기본 문항 풀.
        quotas:         유형별 출제 문항 수.
        fallback_pools: 기본 풀이 부족할 때 보충할 풀 (예: applied 문제은행).
        rng:            난수원. 테스트에서는 시드 고정 Random 을 주입한다.

    Returns:
        ExamPaper. 풀이 모두 비어 있는 유형만 할당량보다 짧을 수 있다.
    """
    rng = rng or random.Random()
    used_texts: Set[str] = set()
    selected: List[Question] = []

    for q_type in _TYPE_SEQUENCE:
        picked = _select_for_type(
            q_type,
            pools.by_type(q_type),
            quotas.for_type(q_type),
            fallback_pools.by_type(q_type) if fallback_pools else None,
            used_texts,
            rng,
        )
        selected.extend(picked)

    # 유형 블록 순서 최종 보장 (sort 는 안정 정렬이라 블록 내부 순서는 유지)
    selected.sort(key=lambda q: TYPE_ORDER.get(q.type, 99))

    paper = ExamPaper(
        id=_new_paper_id(),
        questions=selected,
        total_score=sum(q.score for q in selected),
        generated_at=datetime.now(timezone.utc),
    )
    logger.info(
        f"assemble_paper: {paper.id} — {len(selected)}문항, 총점 {paper.total_score}"
    )
    return paper


def generate_exam_paper(
    difficulty: str,
    quotas: ExamQuotas,
    rng: Optional[random.Random] = None,
    bank_text: Optional[str] = None,
) -> ExamPaper:
    """
    난이도별 문제은행을 읽어 시험지를 만든다.

    bank_text 가 주어지면(업로드 문제은행) 파일 대신 그 텍스트를 기본 풀로 쓴다.
    FALLBACK_DIFFICULTY 에 보충 난이도가 지정된 경우에만, 그리고 기본 풀이
    할당량보다 적을 때만 보충 문제은행을 읽는다.
    """
    if bank_text is None:
        bank_text = load_bank_text(difficulty)
    pools = partition(parse_question_bank(bank_text, id_prefix=difficulty))

    logger.info(
        f"[QB] 유형별 문항 수: 단일 {len(pools.single)}, 판단 {len(pools.true_false)}, "
        f"다중 {len(pools.multiple)} (difficulty={difficulty})"
    )

    fallback_pools = None
    fallback_difficulty = FALLBACK_DIFFICULTY.get(difficulty)
    if fallback_difficulty and _is_short(pools, quotas):
        fb_text = load_bank_text(fallback_difficulty)
        fallback_pools = partition(parse_question_bank(fb_text, id_prefix=fallback_difficulty))

    return assemble_paper(pools, quotas, fallback_pools, rng)


# ── 내부 함수 ────────────────────────────────────────────────────────────────

def _select_for_type(
    q_type: QuestionType,
    pool: List[Question],
    quota: int,
    fallback: Optional[List[Question]],
    used_texts: Set[str],
    rng: random.Random,
) -> List[Question]:
    picked = _sample_without_replacement(pool, quota, rng)
    used_texts.update(q.question_text for q in picked)

    if len(picked) < quota and fallback:
        candidates = [q for q in fallback if q.question_text not in used_texts]
        extra = _sample_without_replacement(candidates, quota - len(picked), rng)
        picked.extend(extra)
        used_texts.update(q.question_text for q in extra)
        if extra:
            logger.info(f"{q_type.value}: 보충 풀에서 {len(extra)}문항 추가")

    if len(picked) < quota:
        source = pool or fallback or []
        if not source:
            logger.warning(f"{q_type.value}: 사용할 문항이 없어 {len(picked)}/{quota}문항만 출제")
        else:
            logger.warning(
                f"{q_type.value}: 문항 부족 — 복원 추출로 {quota - len(picked)}문항 보충"
            )
            _top_up(picked, source, quota, rng)

    rng.shuffle(picked)
    return picked


def _sample_without_replacement(
    questions: List[Question], count: int, rng: random.Random
) -> List[Question]:
    shuffled = list(questions)
    rng.shuffle(shuffled)  # Fisher–Yates
    return shuffled[: min(count, len(shuffled))]


def _top_up(
    picked: List[Question], source: List[Question], target: int, rng: random.Random
) -> None:
    """복원 추출로 target 까지 채운다. 같은 문항이 다시 뽑히면 ID 에 순번을 붙인다."""
    seen = {}
    for q in picked:
        seen[q.id] = seen.get(q.id, 0) + 1

    while len(picked) < target:
        q = source[rng.randrange(len(source))]
        n = seen.get(q.id, 0)
        seen[q.id] = n + 1
        picked.append(q if n == 0 else q.model_copy(update={"id": f"{q.id}#{n + 1}"}))


def _is_short(pools: QuestionPools, quotas: ExamQuotas) -> bool:
    return any(len(pools.by_type(t)) < quotas.for_type(t) for t in _TYPE_SEQUENCE)


def _new_paper_id() -> str:
    return f"exam_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
