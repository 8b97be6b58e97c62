from collections import defaultdict
from datetime import datetime

from sqlalchemy.orm import Session

from achievement_service.crud import achievement_summary
from course_service.crud import courses_by_id
from course_service.models import Lesson
from quiz_service.crud import list_user_attempts
from .crud import list_course_progress, list_lesson_progress
from .schemas import (
    LessonStat, LessonStats, QuizStat, QuizStats, CourseSummary,
    OverallQuizStats, AchievementStats, ProgressSummary,
)


def _lesson_stats(rows: list[LessonStat]) -> LessonStats:
    if not rows:
        return LessonStats()
    return LessonStats(
        total=len(rows),
        completed=sum(1 for l in rows if l.completed),
        in_progress=sum(1 for l in rows if not l.completed and l.progress > 0),
        average_progress=round(sum(l.progress for l in rows) / len(rows), 2),
        lessons=sorted(rows, key=lambda l: (l.sequence_order or 0, l.id)),
    )


def _quiz_stats(rows: list[QuizStat]) -> QuizStats:
    if not rows:
        return QuizStats()
    return QuizStats(
        total=len(rows),
        passed=sum(1 for q in rows if q.passed),
        average_score=round(sum(q.score for q in rows) / len(rows), 2),
        perfect_scores=sum(1 for q in rows if q.score == 100),
        quizzes=rows,
    )


def build_progress_summary(db: Session, user_id: int, now: datetime) -> ProgressSummary:
    """Read-only: courses the learner has touched, quiz stats, achievements."""
    course_rows = list_course_progress(db, user_id)
    courses = courses_by_id(db, [c.course_id for c in course_rows])

    lesson_rows = list_lesson_progress(db, user_id)
    lessons = {}
    if lesson_rows:
        ids = [lp.lesson_id for lp in lesson_rows]
        lessons = {l.id: l for l in db.query(Lesson).filter(Lesson.id.in_(ids)).all()}

    lessons_by_course: dict[int, list[LessonStat]] = defaultdict(list)
    for lp in lesson_rows:
        lesson = lessons.get(lp.lesson_id)
        lessons_by_course[lp.course_id].append(LessonStat(
            id=lp.lesson_id,
            title=lesson.title if lesson else None,
            progress=lp.percentage,
            completed=lp.completed,
            completed_at=lp.completed_at,
            started_at=lp.started_at,
            sequence_order=lesson.sequence_order if lesson else None,
        ))

    quizzes_by_course: dict[int, list[QuizStat]] = defaultdict(list)
    all_quizzes: list[QuizStat] = []
    for attempt, quiz in list_user_attempts(db, user_id):
        stat = QuizStat(
            id=quiz.id,
            attempt_id=attempt.id,
            title=quiz.title,
            score=int(attempt.score or 0),
            passed=bool(attempt.passed),
            completed_at=attempt.end_time,
            passing_score=quiz.passing_score,
        )
        quizzes_by_course[quiz.course_id].append(stat)
        all_quizzes.append(stat)

    summaries = []
    for cp in course_rows:
        course = courses.get(cp.course_id)
        summaries.append(CourseSummary(
            course_id=cp.course_id,
            title=course.title if course else None,
            percentage=cp.percentage,
            completed=cp.completed,
            started_at=cp.started_at,
            completed_at=cp.completed_at,
            last_accessed=cp.last_accessed,
            lesson_stats=_lesson_stats(lessons_by_course.get(cp.course_id, [])),
            quiz_stats=_quiz_stats(quizzes_by_course.get(cp.course_id, [])),
        ))

    overall = _quiz_stats(all_quizzes)
    return ProgressSummary(
        user_id=user_id,
        courses=summaries,
        quiz_stats=OverallQuizStats(
            total=overall.total,
            passed=overall.passed,
            perfect_scores=overall.perfect_scores,
            average_score=overall.average_score,
        ),
        achievement_stats=AchievementStats(**achievement_summary(db, user_id)),
        overall_progress=round(sum(c.percentage for c in course_rows) / len(course_rows), 2) if course_rows else 0.0,
        last_updated=now,
    )
