"""
Lesson -> course progress rollup.

Course percentage is driven by the count of fully completed lessons, not by
the average of partial lesson percentages: a lesson at 50% contributes
nothing until it reaches 100. Every update recomputes the course row from
the full lesson set for that (user, course); no incremental deltas.

Consistency: the lesson upsert and the course recompute share one
transaction, but no isolation beyond that is assumed. Two concurrent updates
for the same (user, course) can both read the lesson set before either
commits, and the later course write wins. A subsequent update repairs it.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable

from sqlalchemy.orm import Session

from course_service.crud import get_lesson, list_lessons
from shared.clock import utcnow
from shared.database import atomic
from shared.errors import NotFound, InvalidState, InvalidAnswer
from .crud import get_lesson_progress, get_course_progress, count_completed_lessons
from .models import LessonProgress, CourseProgress

logger = logging.getLogger("progress-service")


@dataclass(frozen=True)
class ProgressChange:
    user_id: int
    course_id: int
    lesson_id: int
    lesson_percentage: int
    lesson_completed: bool
    lesson_became_completed: bool
    course_percentage: int
    course_completed: bool
    course_became_completed: bool


def clamp_percent(value: float) -> int:
    value = float(value)
    if not math.isfinite(value):
        raise InvalidAnswer(f"progress must be a finite number, got {value}")
    value = max(0.0, min(100.0, value))
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def course_percentage(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    if completed >= total:
        return 100
    pct = int((Decimal(100 * completed) / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    # 100 is reserved for "every lesson complete"
    return min(99, pct)


class ProgressAggregator:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def set_lesson_progress(
        self, db: Session, user_id: int, lesson_id: int, course_id: int, percent: float
    ) -> ProgressChange:
        if not math.isfinite(percent):
            logger.warning("rejected progress %s for user %s lesson %s", percent, user_id, lesson_id)
            raise InvalidAnswer(f"progress must be a finite number, got {percent}")

        lesson = get_lesson(db, lesson_id)
        if not lesson:
            logger.warning("lesson %s not found", lesson_id)
            raise NotFound("lesson", lesson_id)
        if lesson.course_id != course_id:
            logger.warning("lesson %s is not in course %s", lesson_id, course_id)
            raise InvalidState(f"lesson {lesson_id} does not belong to course {course_id}")

        pct = clamp_percent(percent)
        completed = pct == 100
        now = self.clock()

        with atomic(db, f"progress for user {user_id} lesson {lesson_id}"):
            lp = get_lesson_progress(db, user_id, lesson_id)
            was_completed = bool(lp and lp.completed)

            if lp is None:
                lp = LessonProgress(
                    user_id=user_id,
                    lesson_id=lesson_id,
                    course_id=course_id,
                    started_at=now,
                )
                db.add(lp)

            lp.percentage = pct
            lp.completed = completed
            lp.updated_at = now
            if completed and lp.completed_at is None:
                lp.completed_at = now
            db.flush()

            cp, course_was_completed = self._recompute_course(db, user_id, course_id, now)

        change = ProgressChange(
            user_id=user_id,
            course_id=course_id,
            lesson_id=lesson_id,
            lesson_percentage=pct,
            lesson_completed=completed,
            lesson_became_completed=completed and not was_completed,
            course_percentage=cp.percentage,
            course_completed=cp.completed,
            course_became_completed=cp.completed and not course_was_completed,
        )
        if change.lesson_became_completed:
            logger.info("user %s completed lesson %s", user_id, lesson_id)
        if change.course_became_completed:
            logger.info("user %s completed course %s", user_id, course_id)
        return change

    def _recompute_course(
        self, db: Session, user_id: int, course_id: int, now: datetime
    ) -> tuple[CourseProgress, bool]:
        lesson_ids = [l.id for l in list_lessons(db, course_id)]
        done = count_completed_lessons(db, user_id, lesson_ids)
        pct = course_percentage(done, len(lesson_ids))

        cp = get_course_progress(db, user_id, course_id)
        was_completed = bool(cp and cp.completed)
        if cp is None:
            cp = CourseProgress(user_id=user_id, course_id=course_id, started_at=now)
            db.add(cp)

        cp.percentage = pct
        cp.completed = pct == 100
        cp.last_accessed = now
        if cp.completed and cp.completed_at is None:
            cp.completed_at = now
        db.flush()
        return cp, was_completed
