"""
In-memory state machine for one learner's pass through a quiz.

    NOT_STARTED -> IN_PROGRESS -> SUBMITTED | TIMED_OUT

Answers live only in this object until a terminal transition; nothing is
persisted per answer, so a session dropped before submit or timeout loses
its answers. The terminal transition scores exactly once; persisting the
result is the caller's job (see LearningEngine).
"""
import logging
import threading
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, NoReturn

from shared.errors import InvalidState, InvalidAnswer
from .question_set import QuestionSet, is_single_select
from .scoring import ScoreResult, score

logger = logging.getLogger("quiz-service")


class AttemptState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = (AttemptState.SUBMITTED, AttemptState.TIMED_OUT)


def format_countdown(seconds: int | None) -> str | None:
    if seconds is None:
        return None
    minutes, rest = divmod(max(0, seconds), 60)
    return f"{minutes}:{rest:02d}"


class AttemptSession:
    def __init__(self, question_set: QuestionSet, user_id: int):
        self.question_set = question_set
        self.user_id = user_id
        self.attempt_id: int | None = None
        self.state = AttemptState.NOT_STARTED
        self.remaining_seconds: int | None = None
        self.result: ScoreResult | None = None
        self.persisted = False
        self._answers: dict[int, frozenset[int]] = {}
        self._lock = threading.Lock()

    # -------------------------
    # Introspection
    # -------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def answers(self) -> Mapping[int, frozenset[int]]:
        return MappingProxyType(dict(self._answers))

    @property
    def countdown_display(self) -> str | None:
        return format_countdown(self.remaining_seconds)

    # -------------------------
    # Transitions
    # -------------------------

    def begin(self, attempt_id: int) -> None:
        with self._lock:
            if self.state is not AttemptState.NOT_STARTED:
                logger.warning("attempt %s already started", self.attempt_id)
                raise InvalidState(f"attempt {self.attempt_id} already started")
            self.attempt_id = attempt_id
            self.remaining_seconds = self.question_set.time_limit_seconds
            self.state = AttemptState.IN_PROGRESS
        logger.info(
            "attempt %s started: user=%s quiz=%s countdown=%s",
            attempt_id, self.user_id, self.question_set.quiz_id, self.remaining_seconds,
        )

    def record_answer(self, question_id: int, selected_option_ids: Iterable[int]) -> None:
        """Replace the current selection for one question (last write wins)."""
        selected = frozenset(selected_option_ids)
        with self._lock:
            self._require_in_progress("record an answer")

            question = self.question_set.get(question_id)
            if question is None:
                self._reject(f"question {question_id} is not part of quiz {self.question_set.quiz_id}")
            unknown = selected - question.option_ids
            if unknown:
                self._reject(f"options {sorted(unknown)} do not belong to question {question_id}")
            if is_single_select(question) and len(selected) != 1:
                self._reject(f"question {question_id} takes exactly one option, got {len(selected)}")

            self._answers[question_id] = selected

    def tick(self, seconds: int = 1) -> ScoreResult | None:
        """
        Advance the countdown. Returns the score when this tick timed the
        attempt out, otherwise None. Ticks outside IN_PROGRESS are ignored.
        """
        with self._lock:
            if self.state is not AttemptState.IN_PROGRESS or self.remaining_seconds is None:
                return None
            self.remaining_seconds = max(0, self.remaining_seconds - max(0, seconds))
            if self.remaining_seconds > 0:
                return None
            logger.info("attempt %s timed out", self.attempt_id)
            return self._terminate(AttemptState.TIMED_OUT)

    def submit(self) -> ScoreResult:
        with self._lock:
            self._require_in_progress("submit")
            logger.info("attempt %s submitted", self.attempt_id)
            return self._terminate(AttemptState.SUBMITTED)

    def mark_persisted(self) -> None:
        self.persisted = True

    # -------------------------
    # Internals (caller holds the lock)
    # -------------------------

    def _require_in_progress(self, action: str) -> None:
        if self.state is not AttemptState.IN_PROGRESS:
            msg = f"cannot {action}: attempt {self.attempt_id} is {self.state.value}"
            logger.warning(msg)
            raise InvalidState(msg)

    def _reject(self, msg: str) -> NoReturn:
        logger.warning("attempt %s: %s", self.attempt_id, msg)
        raise InvalidAnswer(msg)

    def _terminate(self, final_state: AttemptState) -> ScoreResult:
        self.state = final_state
        frozen = dict(self._answers)
        self.result = score(self.question_set, frozen)
        return self.result
