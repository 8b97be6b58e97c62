from dataclasses import asdict

from fastapi import APIRouter, Request

from shared.errors import EngineError
from shared.http import to_http
from shared.identity import current_user_id
from .schemas import (
    AttemptStartOut, QuestionOut, AnswerIn, TickIn,
    AttemptResultOut, QuestionResultOut, SessionStateOut,
)
from .scoring import ScoreResult
from .session import format_countdown


def result_out(attempt_id: int, r: ScoreResult) -> AttemptResultOut:
    return AttemptResultOut(
        attempt_id=attempt_id,
        total_earned=r.total_earned,
        total_possible=r.total_possible,
        percentage=r.percentage,
        passed=r.passed,
        questions=[
            QuestionResultOut(
                question_id=q.question_id,
                selected_option_ids=list(q.selected_option_ids),
                is_correct=q.is_correct,
                points_earned=q.points_earned,
                points_possible=q.points_possible,
            )
            for q in r.per_question
        ],
    )


def build_router(engine):
    router = APIRouter()

    def outcome_out(outcome) -> SessionStateOut:
        return SessionStateOut(
            attempt_id=outcome.attempt_id,
            state=outcome.state.value,
            time_remaining=None,
            answered=sum(1 for q in outcome.result.per_question if q.selected_option_ids),
            result=result_out(outcome.attempt_id, outcome.result),
            unlocked=[asdict(u) for u in outcome.unlocked],
        )

    @router.post("/quizzes/{quiz_id}/attempts", response_model=AttemptStartOut)
    def start(quiz_id: int, request: Request):
        uid = current_user_id(request)
        try:
            started = engine.start_attempt(quiz_id, uid)
        except EngineError as e:
            raise to_http(e)

        qs = started.question_set
        return AttemptStartOut(
            attempt_id=started.attempt_id,
            quiz_id=qs.quiz_id,
            title=qs.title,
            passing_score=qs.passing_score,
            questions=[QuestionOut(**q) for q in qs.public_view()],
            time_remaining=started.remaining_seconds,
            time_display=format_countdown(started.remaining_seconds),
        )

    @router.put("/attempts/{attempt_id}/answers/{question_id}", response_model=SessionStateOut)
    def answer(attempt_id: int, question_id: int, payload: AnswerIn, request: Request):
        uid = current_user_id(request)
        try:
            engine.record_answer(attempt_id, uid, question_id, payload.selected_option_ids)
            s = engine.session(attempt_id, uid)
        except EngineError as e:
            raise to_http(e)
        return SessionStateOut(
            attempt_id=attempt_id,
            state=s.state.value,
            time_remaining=s.remaining_seconds,
            time_display=s.countdown_display,
            answered=len(s.answers),
        )

    @router.post("/attempts/{attempt_id}/tick", response_model=SessionStateOut)
    def tick(attempt_id: int, payload: TickIn, request: Request):
        uid = current_user_id(request)
        try:
            outcome = engine.tick(attempt_id, uid, payload.seconds)
            if outcome is not None:
                return outcome_out(outcome)
            s = engine.session(attempt_id, uid)
        except EngineError as e:
            raise to_http(e)
        return SessionStateOut(
            attempt_id=attempt_id,
            state=s.state.value,
            time_remaining=s.remaining_seconds,
            time_display=s.countdown_display,
            answered=len(s.answers),
        )

    @router.post("/attempts/{attempt_id}/submit", response_model=SessionStateOut)
    def submit(attempt_id: int, request: Request):
        uid = current_user_id(request)
        try:
            outcome = engine.submit(attempt_id, uid)
        except EngineError as e:
            raise to_http(e)
        return outcome_out(outcome)

    @router.delete("/attempts/{attempt_id}/session", response_model=dict)
    def abandon(attempt_id: int, request: Request):
        uid = current_user_id(request)
        try:
            engine.abandon(attempt_id, uid)
        except EngineError as e:
            raise to_http(e)
        return {"abandoned": True}

    @router.get("/attempts/{attempt_id}/result", response_model=AttemptResultOut)
    def result(attempt_id: int, request: Request):
        uid = current_user_id(request)
        try:
            r = engine.get_attempt_result(attempt_id, uid)
        except EngineError as e:
            raise to_http(e)
        return result_out(attempt_id, r)

    return router
