from datetime import datetime, timedelta

import pytest

from achievement_service.models import Achievement
from api_gateway.engine import LearningEngine
from api_gateway.main import create_tables
from course_service.models import Course, Lesson
from quiz_service.models import Quiz, Question, Option
from shared.config import Settings
from shared.database import make_engine, make_session_factory


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def db_engine():
    engine = make_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def SessionLocal(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def db(SessionLocal):
    with SessionLocal() as s:
        yield s


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 0, 0))


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", log_level="DEBUG")


@pytest.fixture
def engine(SessionLocal, settings, clock):
    return LearningEngine(SessionLocal, settings, clock=clock)


def seed_course(db, n_lessons: int = 2, title: str = "Safety Basics") -> tuple[Course, list[Lesson]]:
    course = Course(code="SB-101", title=title, description="")
    db.add(course)
    db.flush()
    lessons = [Lesson(course_id=course.id, title=f"Lesson {i + 1}", sequence_order=i + 1) for i in range(n_lessons)]
    db.add_all(lessons)
    db.commit()
    return course, lessons


def seed_quiz(db, course_id: int, *, time_limit: int | None = None, passing_score: int | None = None) -> dict:
    """
    Two questions worth 10 points each:
    q1 single choice (q1_ok correct, q1_bad wrong),
    q2 multiple answer (a and b correct, c wrong).
    """
    quiz = Quiz(course_id=course_id, title="Hazards", passing_score=passing_score, time_limit=time_limit)
    db.add(quiz)
    db.flush()

    q1 = Question(quiz_id=quiz.id, text="Pick the exit", question_type="single_choice", points=10, sequence_order=1)
    q2 = Question(quiz_id=quiz.id, text="Pick all PPE", question_type="multiple_answer", points=10, sequence_order=2)
    db.add_all([q1, q2])
    db.flush()

    q1_ok = Option(question_id=q1.id, text="Door", is_correct=True, sequence_order=1)
    q1_bad = Option(question_id=q1.id, text="Window", is_correct=False, sequence_order=2)
    a = Option(question_id=q2.id, text="Gloves", is_correct=True, sequence_order=1)
    b = Option(question_id=q2.id, text="Helmet", is_correct=True, sequence_order=2)
    c = Option(question_id=q2.id, text="Sandals", is_correct=False, sequence_order=3)
    db.add_all([q1_ok, q1_bad, a, b, c])
    db.commit()

    return {
        "quiz": quiz.id, "q1": q1.id, "q2": q2.id,
        "q1_ok": q1_ok.id, "q1_bad": q1_bad.id,
        "a": a.id, "b": b.id, "c": c.id,
    }


def seed_achievement(db, criteria: str, required: int = 1, points: int = 10, title: str | None = None) -> Achievement:
    ach = Achievement(
        title=title or f"{criteria} x{required}",
        criteria=criteria,
        required_progress=required,
        points=points,
    )
    db.add(ach)
    db.commit()
    return ach
