import random

import pytest

from exam_cbt.models.question_model import (
    ExamQuotas,
    QuestionBank,
    QuestionPools,
    QuestionType,
)
from exam_cbt.services.bank_loader import QuestionBankNotFoundError
from exam_cbt.services.bank_parser import parse_question_bank
from exam_cbt.services.paper_assembler import assemble_paper, generate_exam_paper, partition


@pytest.fixture
def pools(make_question):
    return QuestionPools(
        single=[make_question(f"s{i}") for i in range(10)],
        true_false=[make_question(f"t{i}", QuestionType.TRUE_FALSE, answer="对") for i in range(5)],
        multiple=[make_question(f"m{i}", QuestionType.MULTIPLE, answer="AB") for i in range(6)],
    )


def _types(paper):
    return [q.type for q in paper.questions]


def test_partition_splits_by_type(bank_text):
    bank = parse_question_bank(bank_text, id_prefix="basic")
    pools = partition(bank)
    assert len(pools.single) == 4
    assert len(pools.true_false) == 2
    assert len(pools.multiple) == 1
    assert all(q.type == QuestionType.TRUE_FALSE for q in pools.true_false)


def test_partition_of_empty_bank():
    pools = partition(QuestionBank())
    assert pools.single == [] and pools.true_false == [] and pools.multiple == []


def test_paper_has_exact_length_and_block_order(pools, rng):
    paper = assemble_paper(pools, ExamQuotas(single=4, true_false=3, multiple=2), rng=rng)

    assert len(paper.questions) == 9
    assert _types(paper) == (
        [QuestionType.SINGLE] * 4 + [QuestionType.TRUE_FALSE] * 3 + [QuestionType.MULTIPLE] * 2
    )
    assert paper.total_score == 4 + 3 + 2 * 1.5
    assert len({q.id for q in paper.questions}) == 9


def test_same_seed_gives_same_paper(pools):
    quotas = ExamQuotas(single=5, true_false=2, multiple=3)
    first = assemble_paper(pools, quotas, rng=random.Random(7))
    second = assemble_paper(pools, quotas, rng=random.Random(7))
    assert [q.id for q in first.questions] == [q.id for q in second.questions]
    assert first.id != second.id


def test_sparse_pool_is_topped_up_with_replacement(make_question, rng):
    pools = QuestionPools(single=[make_question(f"s{i}") for i in range(3)])
    paper = assemble_paper(pools, ExamQuotas(single=50, true_false=0, multiple=0), rng=rng)

    assert len(paper.questions) == 50
    assert all(q.type == QuestionType.SINGLE for q in paper.questions)
    assert {q.question_text for q in paper.questions} == {"题干 s0", "题干 s1", "题干 s2"}
    # 복원 추출로 다시 뽑힌 문항도 응답 키가 겹치지 않는다
    assert len({q.id for q in paper.questions}) == 50


def test_fallback_pool_fills_gap_without_repeating_text(make_question, rng):
    primary = QuestionPools(single=[make_question("p1", text="共同题干"), make_question("p2")])
    fallback = QuestionPools(single=[
        make_question("f1", text="共同题干"),
        make_question("f2"),
        make_question("f3"),
    ])
    paper = assemble_paper(
        primary, ExamQuotas(single=4, true_false=0, multiple=0), fallback_pools=fallback, rng=rng
    )

    ids = {q.id for q in paper.questions}
    assert ids == {"p1", "p2", "f2", "f3"}
    texts = [q.question_text for q in paper.questions]
    assert len(texts) == len(set(texts))


def test_fallback_then_top_up_when_both_short(make_question, rng):
    primary = QuestionPools(true_false=[make_question("t1", QuestionType.TRUE_FALSE, answer="对")])
    fallback = QuestionPools(true_false=[make_question("ft1", QuestionType.TRUE_FALSE, answer="错")])
    paper = assemble_paper(
        primary, ExamQuotas(single=0, true_false=5, multiple=0), fallback_pools=fallback, rng=rng
    )
    assert len(paper.questions) == 5
    assert {"t1", "ft1"} <= {q.id for q in paper.questions}


def test_empty_pools_give_short_paper_without_failing(rng):
    paper = assemble_paper(QuestionPools(), ExamQuotas(single=3, true_false=1, multiple=1), rng=rng)
    assert paper.questions == []
    assert paper.total_score == 0


def test_generate_basic_paper_uses_applied_bank_as_fallback(rng):
    quotas = ExamQuotas(single=6, true_false=3, multiple=2)
    paper = generate_exam_paper("basic", quotas, rng=rng)

    assert _types(paper) == (
        [QuestionType.SINGLE] * 6 + [QuestionType.TRUE_FALSE] * 3 + [QuestionType.MULTIPLE] * 2
    )
    singles = [q for q in paper.questions if q.type == QuestionType.SINGLE]
    assert sum(q.id.startswith("basic_") for q in singles) == 4
    assert sum(q.id.startswith("applied_") for q in singles) == 2
    assert len({q.question_text for q in paper.questions}) == len(paper.questions)


def test_generate_from_uploaded_text(rng):
    text = "## 单选题\n1. 题一\nA. 甲\nB. 乙\n答案：A\n2. 题二\nA. 甲\nB. 乙\n答案：B"
    paper = generate_exam_paper(
        "custom", ExamQuotas(single=2, true_false=0, multiple=0), rng=rng, bank_text=text
    )
    assert sorted(q.id for q in paper.questions) == ["custom_1", "custom_2"]


def test_generate_unknown_difficulty_raises(rng):
    with pytest.raises(QuestionBankNotFoundError):
        generate_exam_paper("expert", ExamQuotas(), rng=rng)
