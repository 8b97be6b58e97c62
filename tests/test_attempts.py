import logging

import pytest

from quiz_service import crud as quiz_crud
from quiz_service.models import Attempt, Question, Quiz, Response
from quiz_service.session import AttemptState
from shared.errors import AlreadyCompleted, InvalidState, NotFound, PersistenceFailure
from tests.conftest import seed_course, seed_quiz

USER = 501


@pytest.fixture
def quiz(db):
    course, _ = seed_course(db)
    return seed_quiz(db, course.id)


@pytest.fixture
def timed_quiz(db):
    course, _ = seed_course(db)
    return seed_quiz(db, course.id, time_limit=2)


def _responses(db, attempt_id):
    return db.query(Response).filter(Response.attempt_id == attempt_id).order_by(Response.question_id).all()


def test_start_creates_open_attempt(engine, db, quiz, clock):
    started = engine.start_attempt(quiz["quiz"], USER)

    assert started.remaining_seconds is None
    assert [q.id for q in started.question_set] == [quiz["q1"], quiz["q2"]]

    row = db.get(Attempt, started.attempt_id)
    assert row.completed is False
    assert row.start_time == clock.now
    assert row.score is None and row.passed is None and row.end_time is None


def test_start_unknown_quiz(engine):
    with pytest.raises(NotFound):
        engine.start_attempt(12345, USER)


def test_submit_scores_and_persists_once(engine, db, quiz, clock):
    started = engine.start_attempt(quiz["quiz"], USER)
    engine.record_answer(started.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])
    engine.record_answer(started.attempt_id, USER, quiz["q2"], [quiz["a"]])
    clock.advance(90)

    outcome = engine.submit(started.attempt_id, USER)

    assert outcome.state is AttemptState.SUBMITTED
    assert outcome.result.percentage == 75
    assert outcome.result.passed

    row = db.get(Attempt, started.attempt_id)
    assert row.completed is True
    assert row.score == 75
    assert row.passed is True
    assert row.end_time == clock.now

    responses = _responses(db, started.attempt_id)
    assert len(responses) == 2
    assert responses[0].is_correct and responses[0].points_earned == 10
    assert not responses[1].is_correct and responses[1].points_earned == 5
    assert responses[1].selected_option_ids == [quiz["a"]]


def test_unanswered_questions_get_response_rows(engine, db, quiz):
    started = engine.start_attempt(quiz["quiz"], USER)
    engine.record_answer(started.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])
    engine.submit(started.attempt_id, USER)

    responses = _responses(db, started.attempt_id)
    assert len(responses) == 2
    assert responses[1].selected_option_ids == []
    assert responses[1].points_earned == 0


def test_completed_quiz_cannot_be_retaken(engine, quiz):
    started = engine.start_attempt(quiz["quiz"], USER)
    engine.submit(started.attempt_id, USER)

    with pytest.raises(AlreadyCompleted) as exc:
        engine.start_attempt(quiz["quiz"], USER)
    assert exc.value.attempt_id == started.attempt_id


def test_second_live_attempt_is_rejected(engine, quiz):
    engine.start_attempt(quiz["quiz"], USER)
    with pytest.raises(InvalidState):
        engine.start_attempt(quiz["quiz"], USER)


def test_abandoned_attempt_row_is_reused(engine, db, quiz, clock):
    first = engine.start_attempt(quiz["quiz"], USER)
    engine.record_answer(first.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])
    engine.abandon(first.attempt_id, USER)

    clock.advance(300)
    second = engine.start_attempt(quiz["quiz"], USER)

    assert second.attempt_id == first.attempt_id
    assert db.query(Attempt).filter(Attempt.user_id == USER).count() == 1
    assert db.get(Attempt, second.attempt_id).start_time == clock.now
    # answers from the dropped session are gone
    assert len(engine.session(second.attempt_id, USER).answers) == 0


def test_other_users_cannot_touch_the_attempt(engine, quiz):
    started = engine.start_attempt(quiz["quiz"], USER)
    with pytest.raises(NotFound):
        engine.record_answer(started.attempt_id, USER + 1, quiz["q1"], [quiz["q1_ok"]])
    with pytest.raises(NotFound):
        engine.submit(started.attempt_id, USER + 1)


def test_submit_after_submit_is_invalid(engine, quiz):
    started = engine.start_attempt(quiz["quiz"], USER)
    engine.submit(started.attempt_id, USER)
    # the live session is gone once the result is stored
    with pytest.raises(NotFound):
        engine.submit(started.attempt_id, USER)


def test_timeout_scores_like_a_manual_submit(engine, db, timed_quiz, SessionLocal, settings, clock):
    started = engine.start_attempt(timed_quiz["quiz"], USER)
    assert started.remaining_seconds == 120
    engine.record_answer(started.attempt_id, USER, timed_quiz["q1"], [timed_quiz["q1_ok"]])

    assert engine.tick(started.attempt_id, USER, 60) is None
    outcome = engine.tick(started.attempt_id, USER, 60)

    assert outcome.state is AttemptState.TIMED_OUT
    assert outcome.result.total_earned == 10
    assert outcome.result.percentage == 50
    assert not outcome.result.passed

    row = db.get(Attempt, started.attempt_id)
    assert row.completed and row.score == 50 and row.passed is False
    assert len(_responses(db, started.attempt_id)) == 2


def test_tick_after_timeout_has_nothing_to_do(engine, timed_quiz):
    started = engine.start_attempt(timed_quiz["quiz"], USER)
    engine.tick(started.attempt_id, USER, 120)
    with pytest.raises(NotFound):
        engine.tick(started.attempt_id, USER, 1)


def test_failed_response_write_leaves_attempt_open(engine, db, quiz, monkeypatch):
    started = engine.start_attempt(quiz["quiz"], USER)
    engine.record_answer(started.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])

    real_response = quiz_crud.Response

    def broken_response(**kwargs):
        kwargs["question_id"] = None  # violates NOT NULL
        return real_response(**kwargs)

    monkeypatch.setattr(quiz_crud, "Response", broken_response)
    with pytest.raises(PersistenceFailure):
        engine.submit(started.attempt_id, USER)

    db.expire_all()
    row = db.get(Attempt, started.attempt_id)
    assert row.completed is False
    assert row.score is None
    assert _responses(db, started.attempt_id) == []

    # the frozen result is written when the caller submits again
    monkeypatch.setattr(quiz_crud, "Response", real_response)
    outcome = engine.submit(started.attempt_id, USER)
    assert outcome.result.percentage == 50

    db.expire_all()
    assert db.get(Attempt, started.attempt_id).completed is True
    assert len(_responses(db, started.attempt_id)) == 2


def test_stored_result_matches_submission(engine, quiz):
    started = engine.start_attempt(quiz["quiz"], USER)
    engine.record_answer(started.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])
    engine.record_answer(started.attempt_id, USER, quiz["q2"], [quiz["a"], quiz["c"]])
    outcome = engine.submit(started.attempt_id, USER)

    stored = engine.get_attempt_result(started.attempt_id, USER)
    assert stored.percentage == outcome.result.percentage == 50
    assert stored.total_earned == 10
    assert stored.total_possible == 20
    assert [q.points_earned for q in stored.per_question] == [10, 0]


def test_stored_result_of_open_attempt_is_invalid(engine, quiz):
    started = engine.start_attempt(quiz["quiz"], USER)
    with pytest.raises(InvalidState):
        engine.get_attempt_result(started.attempt_id, USER)


def test_closing_twice_is_refused_by_the_store(engine, db, quiz, clock):
    started = engine.start_attempt(quiz["quiz"], USER)
    outcome = engine.submit(started.attempt_id, USER)

    with pytest.raises(InvalidState):
        quiz_crud.close_attempt(db, started.attempt_id, outcome.result, clock())
    assert db.get(Attempt, started.attempt_id).score == 0


def test_quiz_default_passing_score_comes_from_settings(db, SessionLocal, clock):
    from api_gateway.engine import LearningEngine
    from shared.config import Settings

    course, _ = seed_course(db)
    ids = seed_quiz(db, course.id)
    strict = LearningEngine(SessionLocal, Settings(default_passing_score=80), clock=clock)

    started = strict.start_attempt(ids["quiz"], USER)
    assert started.question_set.passing_score == 80
    strict.record_answer(started.attempt_id, USER, ids["q1"], [ids["q1_ok"]])
    strict.record_answer(started.attempt_id, USER, ids["q2"], [ids["a"]])
    assert not strict.submit(started.attempt_id, USER).result.passed


def test_unknown_quiz_creates_no_profile(engine, db):
    from profile_service.crud import get_profile

    with pytest.raises(NotFound):
        engine.start_attempt(12345, USER)
    assert get_profile(db, USER) is None


def test_missing_session_is_logged(engine, caplog):
    with caplog.at_level(logging.WARNING, logger="learning-engine"):
        with pytest.raises(NotFound):
            engine.record_answer(777, USER, 1, [1])
    assert any("no live session for attempt 777" in r.getMessage() for r in caplog.records)


def test_stored_totals_round_half_up(db, engine, clock):
    course, _ = seed_course(db)
    quiz = Quiz(course_id=course.id, title="Rounding")
    db.add(quiz)
    db.flush()
    question = Question(quiz_id=quiz.id, text="q", question_type="single_choice", points=2.675, sequence_order=1)
    db.add(question)
    db.flush()
    attempt = Attempt(
        quiz_id=quiz.id, user_id=USER, start_time=clock(), end_time=clock(),
        completed=True, score=38, passed=False,
    )
    db.add(attempt)
    db.flush()
    db.add(Response(
        attempt_id=attempt.id, question_id=question.id,
        selected_option_ids=[], is_correct=False, points_earned=1.005,
    ))
    db.commit()

    stored = engine.get_attempt_result(attempt.id, USER)
    # built-in round() gives 1.0 and 2.67 for these binary floats
    assert stored.total_earned == 1.01
    assert stored.total_possible == 2.68


def test_idle_sessions_are_dropped_on_next_start(engine, db, quiz, clock):
    first = engine.start_attempt(quiz["quiz"], USER)
    engine.record_answer(first.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])

    clock.advance(engine.settings.session_idle_minutes * 60 + 1)
    second = engine.start_attempt(quiz["quiz"], USER)

    assert second.attempt_id == first.attempt_id
    assert len(engine.session(second.attempt_id, USER).answers) == 0


def test_recent_activity_keeps_a_session_alive(engine, quiz, clock):
    first = engine.start_attempt(quiz["quiz"], USER)
    idle = engine.settings.session_idle_minutes * 60

    clock.advance(idle - 60)
    engine.record_answer(first.attempt_id, USER, quiz["q1"], [quiz["q1_ok"]])
    clock.advance(120)

    with pytest.raises(InvalidState):
        engine.start_attempt(quiz["quiz"], USER)


def test_engine_lock_is_free_while_the_attempt_row_is_written(engine, quiz, monkeypatch):
    real_open = quiz_crud.open_attempt
    held = []

    def watching_open(*args, **kwargs):
        held.append(engine._lock.locked())
        return real_open(*args, **kwargs)

    monkeypatch.setattr(quiz_crud, "open_attempt", watching_open)
    engine.start_attempt(quiz["quiz"], USER)
    assert held == [False]
