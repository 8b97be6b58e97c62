import pytest

from progress_service.aggregator import ProgressAggregator, clamp_percent, course_percentage
from progress_service.crud import get_course_progress, get_lesson_progress
from shared.errors import InvalidAnswer, InvalidState, NotFound
from tests.conftest import seed_course, seed_quiz

USER = 77


@pytest.fixture
def aggregator(clock):
    return ProgressAggregator(clock=clock)


@pytest.mark.parametrize("done,total,expected", [
    (0, 4, 0),
    (1, 4, 25),
    (2, 3, 67),
    (3, 4, 75),
    (4, 4, 100),
    (199, 200, 99),
    (0, 0, 0),
])
def test_course_percentage(done, total, expected):
    assert course_percentage(done, total) == expected


@pytest.mark.parametrize("raw,expected", [(-5, 0), (0, 0), (49.5, 50), (99.4, 99), (100, 100), (250, 100)])
def test_clamp_percent(raw, expected):
    assert clamp_percent(raw) == expected


def test_lesson_rollup_to_course(db, aggregator):
    course, lessons = seed_course(db, n_lessons=4)

    for lesson in lessons[:3]:
        change = aggregator.set_lesson_progress(db, USER, lesson.id, course.id, 100)
    assert change.course_percentage == 75
    assert not change.course_completed

    change = aggregator.set_lesson_progress(db, USER, lessons[3].id, course.id, 100)
    assert change.lesson_became_completed
    assert change.course_percentage == 100
    assert change.course_completed
    assert change.course_became_completed

    cp = get_course_progress(db, USER, course.id)
    assert cp.percentage == 100 and cp.completed and cp.completed_at is not None


def test_partial_lessons_do_not_move_the_course(db, aggregator):
    course, lessons = seed_course(db, n_lessons=2)
    change = aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 90)

    assert change.lesson_percentage == 90
    assert not change.lesson_completed
    assert change.course_percentage == 0


def test_repeating_an_update_changes_nothing(db, aggregator, clock):
    course, lessons = seed_course(db, n_lessons=2)
    first = aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 100)
    completed_at = get_lesson_progress(db, USER, lessons[0].id).completed_at

    clock.advance(3600)
    again = aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 100)

    assert again.lesson_percentage == first.lesson_percentage
    assert again.course_percentage == first.course_percentage == 50
    assert first.lesson_became_completed
    assert not again.lesson_became_completed
    assert get_lesson_progress(db, USER, lessons[0].id).completed_at == completed_at


def test_lesson_can_drop_below_complete(db, aggregator):
    course, lessons = seed_course(db, n_lessons=1)
    aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 100)
    change = aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 40)

    assert change.lesson_percentage == 40
    assert not change.lesson_completed
    assert change.course_percentage == 0
    assert not change.course_completed
    # the first completion time is kept as history
    assert get_lesson_progress(db, USER, lessons[0].id).completed_at is not None


def test_out_of_range_percent_is_clamped(db, aggregator):
    course, lessons = seed_course(db, n_lessons=1)
    change = aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 180)
    assert change.lesson_percentage == 100
    assert change.course_completed


def test_unknown_lesson(db, aggregator):
    course, _ = seed_course(db)
    with pytest.raises(NotFound):
        aggregator.set_lesson_progress(db, USER, 9999, course.id, 50)


def test_lesson_from_another_course(db, aggregator):
    course_a, lessons_a = seed_course(db, title="A")
    course_b, _ = seed_course(db, title="B")
    with pytest.raises(InvalidState):
        aggregator.set_lesson_progress(db, USER, lessons_a[0].id, course_b.id, 50)
    assert get_lesson_progress(db, USER, lessons_a[0].id) is None


def test_progress_is_per_user(db, aggregator):
    course, lessons = seed_course(db, n_lessons=1)
    aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, 100)
    other = aggregator.set_lesson_progress(db, USER + 1, lessons[0].id, course.id, 10)
    assert other.course_percentage == 0
    assert get_course_progress(db, USER, course.id).completed


def test_summary(engine, db, clock):
    course, lessons = seed_course(db, n_lessons=2)
    ids = seed_quiz(db, course.id)

    engine.set_lesson_progress(USER, lessons[0].id, course.id, 100)
    engine.set_lesson_progress(USER, lessons[1].id, course.id, 30)

    started = engine.start_attempt(ids["quiz"], USER)
    engine.record_answer(started.attempt_id, USER, ids["q1"], [ids["q1_ok"]])
    engine.record_answer(started.attempt_id, USER, ids["q2"], [ids["a"], ids["b"]])
    engine.submit(started.attempt_id, USER)

    summary = engine.get_progress_summary(USER)

    assert summary.user_id == USER
    assert summary.last_updated == clock.now
    assert len(summary.courses) == 1
    c = summary.courses[0]
    assert c.course_id == course.id
    assert c.title == "Safety Basics"
    assert c.percentage == 50
    assert c.lesson_stats.total == 2
    assert c.lesson_stats.completed == 1
    assert c.lesson_stats.in_progress == 1
    assert c.lesson_stats.average_progress == 65
    assert [l.id for l in c.lesson_stats.lessons] == [lessons[0].id, lessons[1].id]
    assert c.quiz_stats.total == 1
    assert c.quiz_stats.perfect_scores == 1

    assert summary.quiz_stats.total == 1
    assert summary.quiz_stats.passed == 1
    assert summary.quiz_stats.average_score == 100
    assert summary.overall_progress == 50


def test_summary_for_a_new_learner(engine):
    summary = engine.get_progress_summary(USER)
    assert summary.courses == []
    assert summary.quiz_stats.total == 0
    assert summary.achievement_stats.total == 0
    assert summary.overall_progress == 0.0


@pytest.mark.parametrize("raw", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_percent_is_rejected(db, aggregator, raw):
    course, lessons = seed_course(db, n_lessons=1)

    with pytest.raises(InvalidAnswer):
        aggregator.set_lesson_progress(db, USER, lessons[0].id, course.id, raw)
    with pytest.raises(InvalidAnswer):
        clamp_percent(raw)

    assert get_lesson_progress(db, USER, lessons[0].id) is None
    assert get_course_progress(db, USER, course.id) is None


def test_nan_does_not_unlock_achievements(engine, db):
    from tests.conftest import seed_achievement

    seed_achievement(db, "lesson_completion")
    course, lessons = seed_course(db, n_lessons=1)
    with pytest.raises(InvalidAnswer):
        engine.set_lesson_progress(USER, lessons[0].id, course.id, float("nan"))
    assert engine.get_progress_summary(USER).achievement_stats.completed == 0
