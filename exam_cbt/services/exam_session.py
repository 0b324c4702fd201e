"""
services/exam_session.py

한 번의 응시(시험지 1장 + ExamState 1개 + 카운트다운 1개)를 관리한다.

상태 전이: notStarted → inProgress → completed
  - start()          : notStarted 에서만 가능. 카운트다운 시작.
  - submit_answer()  : inProgress 에서만 가능.
  - navigate()       : inProgress 에서만 가능.
  - tick()           : 1초 단위 감소. 0 이 되면 자동 제출 (complete 와 같은 경로).
  - complete()       : 최종 제출. 카운트다운 취소. 두 번째 호출은 저장된 결과 반환.

모든 상태 변경은 하나의 RLock 으로 직렬화된다. 구독자 콜백은 잠금 밖에서
상태 스냅샷과 함께 호출된다.
"""

import logging
import threading
import time
from typing import Callable, List, Optional

from config import EXAM_TIME_LIMIT_MS, TICK_SECONDS
from exam_cbt.models.question_model import ExamPaper
from exam_cbt.models.session_state import (
    Answer,
    ExamResult,
    ExamState,
    ExamStatus,
)
from exam_cbt.services.exam_service import (
    UserAnswer,
    build_result,
    calculate_score,
    check_answer,
    get_wrong_question_ids,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[str, ExamState], None]

EVENT_STARTED = "started"
EVENT_ANSWERED = "answered"
EVENT_NAVIGATED = "navigated"
EVENT_TICK = "tick"
EVENT_COMPLETED = "completed"


class InvalidStateError(RuntimeError):
    """현재 시험 상태에서 허용되지 않는 조작."""


class QuestionNotFoundError(LookupError):
    """시험지에 없는 문항 ID."""


class _Countdown:
    """interval 초마다 on_tick 을 호출하는 데몬 스레드. cancel() 후에는 더 호출하지 않는다."""

    def __init__(self, interval: float, on_tick: Callable[[], None]):
        self._interval = interval
        self._on_tick = on_tick
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="exam-countdown")

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def _run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                self._on_tick()
            except Exception:
                logger.exception("카운트다운 틱 처리 실패")


class ExamSession:
    """
    시험 응시 세션.

    Args:
        paper:         이 응시에 사용할 시험지 (생성 후 불변).
        time_limit_ms: 제한 시간 (기본 90분).
        tick_seconds:  카운트다운 주기 (초).
    """

    def __init__(
        self,
        paper: ExamPaper,
        time_limit_ms: int = EXAM_TIME_LIMIT_MS,
        tick_seconds: float = TICK_SECONDS,
    ):
        self.paper = paper
        self._time_limit_ms = time_limit_ms
        self._tick_ms = int(tick_seconds * 1000)
        self._tick_seconds = tick_seconds
        self._lock = threading.RLock()
        self._state = ExamState(
            status=ExamStatus.NOT_STARTED,
            time_limit_ms=time_limit_ms,
            time_remaining_ms=time_limit_ms,
        )
        self._result: Optional[ExamResult] = None
        self._countdown: Optional[_Countdown] = None
        self._listeners: List[StateListener] = []

    # ── 구독 ────────────────────────────────────────────────────────────────

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """상태 변경 구독. 반환된 함수를 호출하면 구독 해제."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: StateListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ── 조회 ────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ExamState:
        """현재 상태의 복사본."""
        with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def status(self) -> ExamStatus:
        with self._lock:
            return self._state.status

    @property
    def result(self) -> Optional[ExamResult]:
        with self._lock:
            return self._result

    @property
    def timer_active(self) -> bool:
        with self._lock:
            return self._countdown is not None and self._countdown.active

    def progress(self) -> dict:
        with self._lock:
            total = len(self.paper.questions)
            answered = len(self._state.answers)
        percentage = answered / total * 100 if total else 0.0
        return {"current": answered, "total": total, "percentage": percentage}

    # ── 상태 전이 ───────────────────────────────────────────────────────────

    def start(self, run_timer: bool = True) -> ExamState:
        """시험 시작. run_timer=False 이면 tick() 을 직접 호출해야 시간이 흐른다."""
        with self._lock:
            if self._state.status != ExamStatus.NOT_STARTED:
                raise InvalidStateError("이미 시작된 시험입니다.")
            self._state = ExamState(
                status=ExamStatus.IN_PROGRESS,
                start_time=time.time(),
                time_limit_ms=self._time_limit_ms,
                time_remaining_ms=self._time_limit_ms,
            )
            if run_timer:
                self._countdown = _Countdown(self._tick_seconds, self.tick)
                self._countdown.start()
            snapshot = self._state.model_copy(deep=True)

        logger.info(f"시험 시작: {self.paper.id} ({len(self.paper.questions)}문항)")
        self._notify(EVENT_STARTED, snapshot)
        return snapshot

    def submit_answer(self, question_id: str, user_answer: UserAnswer) -> ExamState:
        """응답 저장. 같은 문항의 이전 응답은 덮어쓴다."""
        with self._lock:
            self._require_in_progress()
            question = self.paper.find_question(question_id)
            if question is None:
                raise QuestionNotFoundError(f"문항을 찾을 수 없습니다: {question_id}")

            self._state.answers[question_id] = Answer(
                question_id=question_id,
                user_answer=user_answer,
                is_correct=check_answer(question, user_answer),
            )
            self._state.score = calculate_score(self.paper, self._state.answers)
            snapshot = self._state.model_copy(deep=True)

        self._notify(EVENT_ANSWERED, snapshot)
        return snapshot

    def navigate(self, index: int) -> int:
        """현재 문항 이동. 범위를 벗어난 인덱스는 양 끝으로 보정."""
        with self._lock:
            self._require_in_progress()
            last = max(0, len(self.paper.questions) - 1)
            idx = max(0, min(index, last))
            self._state.current_question_index = idx
            snapshot = self._state.model_copy(deep=True)

        self._notify(EVENT_NAVIGATED, snapshot)
        return idx

    def tick(self, elapsed_ms: Optional[int] = None) -> None:
        """남은 시간 감소. 0 에 도달하면 자동 제출."""
        expired = False
        with self._lock:
            if self._state.status != ExamStatus.IN_PROGRESS:
                self._cancel_countdown()
                return
            step = self._tick_ms if elapsed_ms is None else elapsed_ms
            self._state.time_remaining_ms = max(0, self._state.time_remaining_ms - step)
            expired = self._state.time_remaining_ms == 0
            snapshot = self._state.model_copy(deep=True)

        self._notify(EVENT_TICK, snapshot)
        if expired:
            logger.info(f"시험 시간 종료 — 자동 제출: {self.paper.id}")
            self.complete()

    def complete(self) -> ExamResult:
        """
        최종 제출. 이미 완료된 시험이면 저장된 결과를 그대로 반환한다.

        Raises:
            InvalidStateError: 시작되지 않은 시험.
        """
        with self._lock:
            if self._state.status == ExamStatus.COMPLETED:
                return self._result
            if self._state.status != ExamStatus.IN_PROGRESS:
                raise InvalidStateError("진행 중인 시험이 없습니다.")

            self._cancel_countdown()
            self._state.status = ExamStatus.COMPLETED
            self._state.end_time = time.time()
            self._state.wrong_question_ids = get_wrong_question_ids(self.paper, self._state.answers)
            self._state.score = calculate_score(self.paper, self._state.answers)
            self._result = build_result(self.paper, self._state.model_copy(deep=True))
            result = self._result

        logger.info(
            f"시험 완료: {self.paper.id} — {result.exam_state.score.total}점 "
            f"({result.percentage}%, {'합격' if result.passed else '불합격'})"
        )
        self._notify(EVENT_COMPLETED, result.exam_state)
        return result

    def stop_timer(self) -> None:
        """상태는 그대로 두고 카운트다운만 정리 (세션 만료/교체 시)."""
        with self._lock:
            self._cancel_countdown()

    # ── 내부 ────────────────────────────────────────────────────────────────

    def _require_in_progress(self) -> None:
        if self._state.status != ExamStatus.IN_PROGRESS:
            raise InvalidStateError("진행 중인 시험이 아닙니다.")

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None

    def _notify(self, event: str, snapshot: ExamState) -> None:
        with self._lock:
            listeners: List[StateListener] = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, snapshot)
            except Exception:
                logger.exception(f"상태 구독자 처리 실패 (event={event})")


def format_time(milliseconds: int) -> str:
    """밀리초 → MM:SS."""
    total_seconds = max(0, int(milliseconds // 1000))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"
