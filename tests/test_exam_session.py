import threading

import pytest

from exam_cbt.models.question_model import QuestionType
from exam_cbt.models.session_state import ExamStatus
from exam_cbt.services.exam_session import (
    EVENT_COMPLETED,
    EVENT_TICK,
    ExamSession,
    InvalidStateError,
    QuestionNotFoundError,
    format_time,
)


@pytest.fixture
def two_question_paper(make_question, make_paper):
    return make_paper([
        make_question("s1", answer="A"),
        make_question("t1", QuestionType.TRUE_FALSE, answer="对"),
    ])


@pytest.fixture
def exam(two_question_paper):
    session = ExamSession(two_question_paper, time_limit_ms=5000)
    yield session
    session.stop_timer()


def _record(exam):
    events = []
    exam.subscribe(lambda event, state: events.append((event, state)))
    return events


def test_end_to_end_two_correct_answers(exam):
    exam.start(run_timer=False)
    exam.submit_answer("s1", "A")
    exam.submit_answer("t1", ["对"])
    result = exam.complete()

    state = result.exam_state
    assert state.status == ExamStatus.COMPLETED
    assert state.score.total == 2
    assert state.score.single_choice == 1
    assert state.score.true_false == 1
    assert state.wrong_question_ids == []
    assert state.end_time is not None
    assert result.percentage == 2.0
    assert result.passed is False


def test_operations_rejected_outside_in_progress(exam):
    with pytest.raises(InvalidStateError):
        exam.submit_answer("s1", "A")
    with pytest.raises(InvalidStateError):
        exam.navigate(1)
    with pytest.raises(InvalidStateError):
        exam.complete()

    exam.start(run_timer=False)
    with pytest.raises(InvalidStateError):
        exam.start(run_timer=False)
    exam.complete()

    with pytest.raises(InvalidStateError):
        exam.submit_answer("s1", "A")
    with pytest.raises(InvalidStateError):
        exam.navigate(0)
    assert exam.state.answers == {}


def test_unknown_question_id(exam):
    exam.start(run_timer=False)
    with pytest.raises(QuestionNotFoundError):
        exam.submit_answer("nope", "A")


def test_last_answer_wins(exam):
    exam.start(run_timer=False)
    exam.submit_answer("s1", "A")
    state = exam.submit_answer("s1", "B")
    assert len(state.answers) == 1
    assert state.answers["s1"].user_answer == "B"
    assert not state.answers["s1"].is_correct
    assert state.score.total == 0


def test_navigate_clamps_index(exam):
    exam.start(run_timer=False)
    assert exam.navigate(1) == 1
    assert exam.navigate(99) == 1
    assert exam.navigate(-3) == 0
    assert exam.state.current_question_index == 0


def test_unanswered_questions_are_wrong(exam):
    exam.start(run_timer=False)
    exam.submit_answer("s1", "A")
    result = exam.complete()
    assert result.exam_state.wrong_question_ids == ["t1"]
    assert result.exam_state.score.total == 1


def test_timer_expiry_completes_exactly_once(exam):
    events = _record(exam)
    exam.start(run_timer=False)

    for _ in range(4):
        exam.tick()
    assert exam.status == ExamStatus.IN_PROGRESS
    assert exam.state.time_remaining_ms == 1000

    exam.tick()
    assert exam.status == ExamStatus.COMPLETED
    assert exam.state.time_remaining_ms == 0
    frozen = exam.state

    for _ in range(3):
        exam.tick()
    exam.complete()

    assert [e for e, _ in events].count(EVENT_COMPLETED) == 1
    assert [e for e, _ in events].count(EVENT_TICK) == 5
    assert exam.state == frozen


def test_complete_is_idempotent_and_cancels_countdown(two_question_paper):
    exam = ExamSession(two_question_paper, tick_seconds=60)
    exam.start()
    assert exam.timer_active

    first = exam.complete()
    assert not exam.timer_active
    assert exam.complete() is first


def test_countdown_thread_auto_submits(two_question_paper):
    done = threading.Event()
    exam = ExamSession(two_question_paper, time_limit_ms=30, tick_seconds=0.01)
    exam.subscribe(lambda event, state: event == EVENT_COMPLETED and done.set())
    exam.start()

    assert done.wait(timeout=5)
    assert exam.status == ExamStatus.COMPLETED
    assert exam.result.exam_state.wrong_question_ids == ["s1", "t1"]


def test_unsubscribe_and_faulty_listener(exam):
    calls = []

    def broken(event, state):
        raise ValueError("listener failure")

    exam.subscribe(broken)
    unsubscribe = exam.subscribe(lambda event, state: calls.append(event))
    exam.start(run_timer=False)
    unsubscribe()
    exam.navigate(1)

    assert calls == ["started"]
    assert exam.state.current_question_index == 1


def test_progress_and_format_time(exam):
    exam.start(run_timer=False)
    exam.submit_answer("t1", "错")
    assert exam.progress() == {"current": 1, "total": 2, "percentage": 50.0}
    assert format_time(90 * 60 * 1000) == "90:00"
    assert format_time(61_999) == "01:01"
    assert format_time(0) == "00:00"
