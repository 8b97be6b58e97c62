import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from shared.database import atomic
from shared.errors import NotFound, InvalidState
from .models import Quiz, Question, Option, Attempt, Response
from .question_set import OptionView, QuestionSet, build_question
from .scoring import QuestionResult, ScoreResult, round_cents

logger = logging.getLogger("quiz-service")


def get_quiz(db: Session, quiz_id: int) -> Quiz:
    quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    if not quiz:
        logger.warning("quiz %s not found", quiz_id)
        raise NotFound("quiz", quiz_id)
    return quiz

def load_question_set(db: Session, quiz_id: int, default_passing_score: int = 70) -> QuestionSet:
    quiz = get_quiz(db, quiz_id)

    questions = (
        db.query(Question)
        .filter(Question.quiz_id == quiz_id)
        .order_by(Question.sequence_order.asc(), Question.id.asc())
        .all()
    )
    if not questions:
        logger.warning("quiz %s has no questions", quiz_id)
        raise InvalidState(f"quiz {quiz_id} has no questions")

    options_by_question: dict[int, list[OptionView]] = {q.id: [] for q in questions}
    rows = db.query(Option).filter(Option.question_id.in_(list(options_by_question))).all()
    for o in rows:
        options_by_question[o.question_id].append(
            OptionView(id=o.id, text=o.text, is_correct=bool(o.is_correct), sequence_order=o.sequence_order)
        )

    built = tuple(
        build_question(
            id=q.id,
            text=q.text,
            question_type=q.question_type,
            points=q.points,
            options=options_by_question[q.id],
            sequence_order=q.sequence_order,
        )
        for q in questions
    )

    passing = quiz.passing_score if quiz.passing_score is not None else default_passing_score
    return QuestionSet(
        quiz_id=quiz.id,
        course_id=quiz.course_id,
        lesson_id=quiz.lesson_id,
        title=quiz.title,
        passing_score=passing,
        time_limit=quiz.time_limit,
        questions=built,
    )

def get_attempt(db: Session, attempt_id: int) -> Attempt:
    a = db.query(Attempt).filter(Attempt.id == attempt_id).first()
    if not a:
        logger.warning("attempt %s not found", attempt_id)
        raise NotFound("attempt", attempt_id)
    return a

def find_completed_attempt(db: Session, user_id: int, quiz_id: int) -> Attempt | None:
    return (
        db.query(Attempt)
        .filter(Attempt.user_id == user_id, Attempt.quiz_id == quiz_id, Attempt.completed.is_(True))
        .first()
    )

def find_open_attempt(db: Session, user_id: int, quiz_id: int) -> Attempt | None:
    return (
        db.query(Attempt)
        .filter(Attempt.user_id == user_id, Attempt.quiz_id == quiz_id, Attempt.completed.is_(False))
        .first()
    )

def open_attempt(db: Session, quiz_id: int, user_id: int, now: datetime, reuse: Attempt | None = None) -> Attempt:
    """Create the attempt row, or restart the clock on an abandoned open one."""
    with atomic(db, f"attempt start for quiz {quiz_id}"):
        if reuse is not None:
            reuse.start_time = now
            a = reuse
        else:
            a = Attempt(quiz_id=quiz_id, user_id=user_id, start_time=now, completed=False)
            db.add(a)
    db.refresh(a)
    return a

def close_attempt(db: Session, attempt_id: int, result: ScoreResult, now: datetime) -> Attempt:
    """
    Mark the attempt completed and write one Response row per question,
    in a single transaction. The update only matches a still-open attempt,
    so a second close of the same attempt fails instead of overwriting
    the historical score.
    """
    with atomic(db, f"attempt {attempt_id} close"):
        res = db.execute(
            update(Attempt)
            .where(Attempt.id == attempt_id, Attempt.completed.is_(False))
            .values(completed=True, end_time=now, score=result.percentage, passed=result.passed)
        )
        if res.rowcount != 1:
            logger.warning("close of attempt %s matched no open row", attempt_id)
            raise InvalidState(f"attempt {attempt_id} is missing or already completed")

        db.add_all([
            Response(
                attempt_id=attempt_id,
                question_id=r.question_id,
                selected_option_ids=list(r.selected_option_ids),
                is_correct=r.is_correct,
                points_earned=r.points_earned,
            )
            for r in result.per_question
        ])

    attempt = get_attempt(db, attempt_id)
    db.refresh(attempt)
    return attempt

def stored_result(db: Session, attempt_id: int) -> ScoreResult:
    """Rebuild a finished attempt's result from its Response rows."""
    attempt = get_attempt(db, attempt_id)
    if not attempt.completed:
        logger.warning("result requested for open attempt %s", attempt_id)
        raise InvalidState(f"attempt {attempt_id} is still in progress")

    rows = (
        db.query(Response, Question)
        .join(Question, Question.id == Response.question_id)
        .filter(Response.attempt_id == attempt_id)
        .order_by(Question.sequence_order.asc(), Question.id.asc())
        .all()
    )
    per_question = tuple(
        QuestionResult(
            question_id=r.question_id,
            selected_option_ids=tuple(r.selected_option_ids or ()),
            is_correct=bool(r.is_correct),
            points_earned=float(r.points_earned or 0),
            points_possible=float(q.points),
        )
        for r, q in rows
    )
    return ScoreResult(
        per_question=per_question,
        total_earned=round_cents(sum(r.points_earned for r in per_question)),
        total_possible=round_cents(sum(r.points_possible for r in per_question)),
        # the stored score is the historical record; never recompute it
        percentage=int(attempt.score or 0),
        passed=bool(attempt.passed),
    )

def list_user_attempts(db: Session, user_id: int) -> list[tuple[Attempt, Quiz]]:
    return (
        db.query(Attempt, Quiz)
        .join(Quiz, Quiz.id == Attempt.quiz_id)
        .filter(Attempt.user_id == user_id, Attempt.completed.is_(True))
        .order_by(Attempt.end_time.desc())
        .all()
    )
