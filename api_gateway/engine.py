"""
LearningEngine: the surface the UI collaborator talks to.

    start_attempt -> record_answer* -> (tick* | submit) -> scored, persisted
        -> achievement events for the closed attempt
    set_lesson_progress -> lesson upsert + course rollup
        -> achievement events for whatever just became completed
    get_progress_summary -> read-only rollup for display

Live attempt sessions are held in memory by this object only. Dropping the
engine, calling ``abandon``, or leaving a session untouched for longer than
``Settings.session_idle_minutes`` discards unsaved answers. Idle sessions are
swept when the next attempt starts.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from sqlalchemy.orm import Session, sessionmaker

from achievement_service.evaluator import AchievementEvaluator, Unlock, events_for_attempt, events_for_progress
from achievement_service.streaks import StreakClient
from profile_service.bootstrap import ProfileBootstrap, RetryPolicy
from progress_service.aggregator import ProgressAggregator, ProgressChange
from progress_service.schemas import ProgressSummary
from progress_service.summary import build_progress_summary
from quiz_service import crud as quiz_crud
from quiz_service.question_set import QuestionSet
from quiz_service.scoring import ScoreResult
from quiz_service.session import AttemptSession, AttemptState
from shared.clock import utcnow
from shared.config import Settings
from shared.errors import AlreadyCompleted, InvalidState, NotFound, PersistenceFailure

logger = logging.getLogger("learning-engine")


@dataclass(frozen=True)
class StartedAttempt:
    attempt_id: int
    question_set: QuestionSet
    remaining_seconds: int | None


@dataclass(frozen=True)
class AttemptOutcome:
    attempt_id: int
    state: AttemptState
    result: ScoreResult
    unlocked: list[Unlock] = field(default_factory=list)


@dataclass(frozen=True)
class LessonProgressOutcome:
    change: ProgressChange
    unlocked: list[Unlock] = field(default_factory=list)


class LearningEngine:
    def __init__(
        self,
        SessionLocal: sessionmaker[Session],
        settings: Settings | None = None,
        *,
        streak_client: StreakClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.SessionLocal = SessionLocal
        self.settings = settings or Settings()
        self.streak_client = streak_client
        self.clock = clock

        self.aggregator = ProgressAggregator(clock=clock)
        self.evaluator = AchievementEvaluator(clock=clock)
        self.profiles = ProfileBootstrap(
            policy=RetryPolicy(max_attempts=self.settings.profile_bootstrap_attempts),
            clock=clock,
        )

        self._sessions: dict[int, AttemptSession] = {}
        self._last_seen: dict[int, datetime] = {}
        self._idle = timedelta(minutes=self.settings.session_idle_minutes)
        self._lock = threading.Lock()

    # -------------------------
    # Attempts
    # -------------------------

    def start_attempt(self, quiz_id: int, user_id: int) -> StartedAttempt:
        now = self.clock()
        with self.SessionLocal() as db:
            qs = quiz_crud.load_question_set(db, quiz_id, self.settings.default_passing_score)

            done = quiz_crud.find_completed_attempt(db, user_id, quiz_id)
            if done:
                logger.warning("user %s tried to retake quiz %s (attempt %s)", user_id, quiz_id, done.id)
                raise AlreadyCompleted(quiz_id, user_id, done.id)

            self.profiles.ensure(db, user_id)

            stale = quiz_crud.find_open_attempt(db, user_id, quiz_id)
            with self._lock:
                self._evict_idle(now)
                live = stale is not None and stale.id in self._sessions
            if live:
                logger.warning("user %s already has attempt %s open on quiz %s", user_id, stale.id, quiz_id)
                raise InvalidState(f"attempt {stale.id} is already in progress")

            attempt = quiz_crud.open_attempt(db, quiz_id, user_id, now, reuse=stale)

        session = AttemptSession(qs, user_id)
        session.begin(attempt.id)
        with self._lock:
            if attempt.id in self._sessions:
                # a concurrent start for the same open row registered first
                logger.warning("attempt %s was started twice for user %s", attempt.id, user_id)
                raise InvalidState(f"attempt {attempt.id} is already in progress")
            self._sessions[attempt.id] = session
            self._last_seen[attempt.id] = now

        return StartedAttempt(attempt_id=attempt.id, question_set=qs, remaining_seconds=session.remaining_seconds)

    def record_answer(self, attempt_id: int, user_id: int, question_id: int, selected_option_ids: Iterable[int]) -> None:
        session = self._live_session(attempt_id, user_id)
        session.record_answer(question_id, selected_option_ids)

    def tick(self, attempt_id: int, user_id: int, seconds: int = 1) -> AttemptOutcome | None:
        """Advance the countdown; returns the outcome if this tick timed the attempt out."""
        session = self._live_session(attempt_id, user_id)
        result = session.tick(seconds)
        if result is None:
            return None
        return self._close(session)

    def submit(self, attempt_id: int, user_id: int) -> AttemptOutcome:
        session = self._live_session(attempt_id, user_id)
        if session.is_terminal:
            if session.persisted:
                logger.warning("attempt %s submitted again", attempt_id)
                raise InvalidState(f"attempt {attempt_id} was already submitted")
            # an earlier close failed to persist; the frozen result is written now
            logger.info("retrying close of attempt %s", attempt_id)
        else:
            session.submit()
        return self._close(session)

    def session(self, attempt_id: int, user_id: int) -> AttemptSession:
        return self._live_session(attempt_id, user_id)

    def abandon(self, attempt_id: int, user_id: int) -> None:
        """The learner navigated away: drop the in-memory session and its answers."""
        session = self._live_session(attempt_id, user_id)
        self._drop(attempt_id)
        logger.info("attempt %s abandoned in state %s", attempt_id, session.state.value)

    def get_attempt_result(self, attempt_id: int, user_id: int) -> ScoreResult:
        with self.SessionLocal() as db:
            attempt = quiz_crud.get_attempt(db, attempt_id)
            if attempt.user_id != user_id:
                logger.warning("user %s asked for result of attempt %s owned by another user", user_id, attempt_id)
                raise NotFound("attempt", attempt_id)
            return quiz_crud.stored_result(db, attempt_id)

    def _live_session(self, attempt_id: int, user_id: int) -> AttemptSession:
        with self._lock:
            session = self._sessions.get(attempt_id)
            if session is not None and session.user_id == user_id:
                self._last_seen[attempt_id] = self.clock()
        if session is None or session.user_id != user_id:
            logger.warning("no live session for attempt %s and user %s", attempt_id, user_id)
            raise NotFound("attempt session", attempt_id)
        return session

    def _drop(self, attempt_id: int) -> None:
        with self._lock:
            self._sessions.pop(attempt_id, None)
            self._last_seen.pop(attempt_id, None)

    def _evict_idle(self, now: datetime) -> None:
        # caller holds self._lock
        cutoff = now - self._idle
        for attempt_id in [a for a, seen in self._last_seen.items() if seen <= cutoff]:
            session = self._sessions.pop(attempt_id, None)
            del self._last_seen[attempt_id]
            logger.info(
                "dropped idle attempt %s in state %s",
                attempt_id, session.state.value if session else "unknown",
            )

    def _close(self, session: AttemptSession) -> AttemptOutcome:
        result = session.result
        attempt_id = session.attempt_id

        with self.SessionLocal() as db:
            attempt = quiz_crud.close_attempt(db, attempt_id, result, self.clock())
            session.mark_persisted()
            self._drop(attempt_id)

            if not attempt.completed:
                logger.error("attempt %s still open after a successful close", attempt_id)
                raise PersistenceFailure(f"attempt {attempt_id} not marked completed after close")
            logger.info(
                "attempt %s closed as %s: %s%% (%s/%s) passed=%s",
                attempt_id, session.state.value, result.percentage,
                result.total_earned, result.total_possible, result.passed,
            )

            unlocked = self.evaluator.apply(db, events_for_attempt(attempt))

        return AttemptOutcome(attempt_id=attempt_id, state=session.state, result=result, unlocked=unlocked)

    # -------------------------
    # Progress
    # -------------------------

    def set_lesson_progress(self, user_id: int, lesson_id: int, course_id: int, percent: float) -> LessonProgressOutcome:
        with self.SessionLocal() as db:
            self.profiles.ensure(db, user_id)
            change = self.aggregator.set_lesson_progress(db, user_id, lesson_id, course_id, percent)
            unlocked = self.evaluator.apply(db, events_for_progress(change))
        return LessonProgressOutcome(change=change, unlocked=unlocked)

    def get_progress_summary(self, user_id: int) -> ProgressSummary:
        with self.SessionLocal() as db:
            return build_progress_summary(db, user_id, now=self.clock())

    # -------------------------
    # Achievements
    # -------------------------

    def sync_login_streak(self, user_id: int) -> list[Unlock]:
        if self.streak_client is None:
            logger.warning("streak sync requested for user %s but no streak service is configured", user_id)
            raise InvalidState("no streak service configured")
        streak = self.streak_client.current_streak(user_id)
        with self.SessionLocal() as db:
            return self.evaluator.on_login_streak(db, user_id, streak)

    def recheck_achievements(self, user_id: int) -> list[Unlock]:
        with self.SessionLocal() as db:
            return self.evaluator.recheck(db, user_id)
