"""
Advances achievement counters from progress events.

Events are only produced on state transitions (a lesson or course that just
became completed, an attempt that was just closed), and every event carries
a source key such as ``lesson:7`` or ``attempt:42``. The first time a source
key advances an achievement it is written to the achievement_event ledger;
later deliveries of the same key are ignored. Replaying the full current
state through ``recheck`` is therefore safe and is how counters are repaired
after a partial failure.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from progress_service.aggregator import ProgressChange
from progress_service.crud import completed_lesson_ids, completed_course_ids
from quiz_service.crud import list_user_attempts
from quiz_service.models import Attempt
from shared.clock import utcnow
from shared.database import atomic
from .crud import achievements_for, get_progress, event_seen
from .models import Achievement, AchievementProgress, AchievementEvent, PointTransaction

logger = logging.getLogger("achievement-service")


class Criteria(str, Enum):
    LESSON_COMPLETION = "lesson_completion"
    COURSE_COMPLETION = "course_completion"
    QUIZ_PASS = "quiz_pass"
    PERFECT_QUIZ = "perfect_quiz"
    LOGIN_STREAK = "login_streak"


@dataclass(frozen=True)
class ProgressEvent:
    user_id: int
    criteria: Criteria
    source_key: str
    value: int = 1  # counter delta; absolute streak length for LOGIN_STREAK


@dataclass(frozen=True)
class Unlock:
    achievement_id: int
    title: str
    points: int


def events_for_progress(change: ProgressChange) -> list[ProgressEvent]:
    events = []
    if change.lesson_became_completed:
        events.append(ProgressEvent(change.user_id, Criteria.LESSON_COMPLETION, f"lesson:{change.lesson_id}"))
    if change.course_became_completed:
        events.append(ProgressEvent(change.user_id, Criteria.COURSE_COMPLETION, f"course:{change.course_id}"))
    return events


def events_for_attempt(attempt: Attempt) -> list[ProgressEvent]:
    if not attempt.completed:
        return []
    events = []
    key = f"attempt:{attempt.id}"
    if attempt.passed:
        events.append(ProgressEvent(attempt.user_id, Criteria.QUIZ_PASS, key))
        if attempt.score == 100:
            events.append(ProgressEvent(attempt.user_id, Criteria.PERFECT_QUIZ, key))
    return events


class AchievementEvaluator:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def apply(self, db: Session, events: Iterable[ProgressEvent]) -> list[Unlock]:
        events = list(events)
        if not events:
            return []

        now = self.clock()
        unlocked: list[Unlock] = []
        with atomic(db, f"achievement progress for user {events[0].user_id}"):
            for ev in events:
                for ach in achievements_for(db, ev.criteria.value):
                    u = self._advance(db, ach, ev, now)
                    if u:
                        unlocked.append(u)

        for u in unlocked:
            logger.info("user %s unlocked achievement %s (%s)", events[0].user_id, u.achievement_id, u.title)
        return unlocked

    def on_login_streak(self, db: Session, user_id: int, current_streak: int) -> list[Unlock]:
        if current_streak <= 0:
            return []
        ev = ProgressEvent(user_id, Criteria.LOGIN_STREAK, f"streak:{current_streak}", current_streak)
        return self.apply(db, [ev])

    def recheck(self, db: Session, user_id: int) -> list[Unlock]:
        """Replay every qualifying fact currently on record for the user."""
        events = [
            ProgressEvent(user_id, Criteria.LESSON_COMPLETION, f"lesson:{lid}")
            for lid in completed_lesson_ids(db, user_id)
        ]
        events += [
            ProgressEvent(user_id, Criteria.COURSE_COMPLETION, f"course:{cid}")
            for cid in completed_course_ids(db, user_id)
        ]
        for attempt, _quiz in list_user_attempts(db, user_id):
            events += events_for_attempt(attempt)
        return self.apply(db, events)

    def _advance(self, db: Session, ach: Achievement, ev: ProgressEvent, now: datetime) -> Unlock | None:
        if event_seen(db, ev.user_id, ach.id, ev.source_key):
            return None

        ap = get_progress(db, ev.user_id, ach.id)
        if ap is None:
            ap = AchievementProgress(user_id=ev.user_id, achievement_id=ach.id, progress=0, completed=False)
            db.add(ap)

        before = ap.progress or 0
        if ev.criteria is Criteria.LOGIN_STREAK:
            target = max(before, ev.value)
        else:
            target = before + ev.value
        ap.progress = min(ach.required_progress, target)
        ap.updated_at = now

        db.add(AchievementEvent(
            user_id=ev.user_id,
            achievement_id=ach.id,
            source_key=ev.source_key,
            delta=ap.progress - before,
            created_at=now,
        ))

        unlock = None
        if ap.progress >= ach.required_progress and not ap.completed:
            ap.completed = True
            ap.completed_at = now
            if ach.points > 0:
                db.add(PointTransaction(
                    user_id=ev.user_id,
                    amount=ach.points,
                    description=f"Completed achievement: {ach.title}",
                    reference_type="achievement",
                    reference_id=ach.id,
                    created_at=now,
                ))
            unlock = Unlock(achievement_id=ach.id, title=ach.title, points=ach.points)

        db.flush()
        return unlock
