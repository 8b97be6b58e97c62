from sqlalchemy.orm import Session
from .models import Course, Lesson

def get_lesson(db: Session, lesson_id: int) -> Lesson | None:
    return db.query(Lesson).filter(Lesson.id == lesson_id).first()

def list_lessons(db: Session, course_id: int) -> list[Lesson]:
    return (
        db.query(Lesson)
        .filter(Lesson.course_id == course_id)
        .order_by(Lesson.sequence_order.asc(), Lesson.id.asc())
        .all()
    )

def courses_by_id(db: Session, course_ids: list[int]) -> dict[int, Course]:
    if not course_ids:
        return {}
    rows = db.query(Course).filter(Course.id.in_(course_ids)).all()
    return {c.id: c for c in rows}
