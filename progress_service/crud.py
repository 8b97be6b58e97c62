from sqlalchemy import func
from sqlalchemy.orm import Session
from .models import LessonProgress, CourseProgress

def get_lesson_progress(db: Session, user_id: int, lesson_id: int) -> LessonProgress | None:
    return (
        db.query(LessonProgress)
        .filter(LessonProgress.user_id == user_id, LessonProgress.lesson_id == lesson_id)
        .first()
    )

def get_course_progress(db: Session, user_id: int, course_id: int) -> CourseProgress | None:
    return (
        db.query(CourseProgress)
        .filter(CourseProgress.user_id == user_id, CourseProgress.course_id == course_id)
        .first()
    )

def count_completed_lessons(db: Session, user_id: int, lesson_ids: list[int]) -> int:
    if not lesson_ids:
        return 0
    return (
        db.query(func.count(LessonProgress.id))
        .filter(
            LessonProgress.user_id == user_id,
            LessonProgress.completed.is_(True),
            LessonProgress.lesson_id.in_(lesson_ids),
        )
        .scalar()
        or 0
    )

def list_course_progress(db: Session, user_id: int) -> list[CourseProgress]:
    return (
        db.query(CourseProgress)
        .filter(CourseProgress.user_id == user_id)
        .order_by(CourseProgress.last_accessed.desc())
        .all()
    )

def list_lesson_progress(db: Session, user_id: int) -> list[LessonProgress]:
    return db.query(LessonProgress).filter(LessonProgress.user_id == user_id).all()

def completed_lesson_ids(db: Session, user_id: int) -> list[int]:
    rows = (
        db.query(LessonProgress.lesson_id)
        .filter(LessonProgress.user_id == user_id, LessonProgress.completed.is_(True))
        .all()
    )
    return [r[0] for r in rows]

def completed_course_ids(db: Session, user_id: int) -> list[int]:
    rows = (
        db.query(CourseProgress.course_id)
        .filter(CourseProgress.user_id == user_id, CourseProgress.completed.is_(True))
        .all()
    )
    return [r[0] for r in rows]
