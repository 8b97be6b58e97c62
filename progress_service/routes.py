from dataclasses import asdict

from fastapi import APIRouter, Request

from shared.errors import EngineError
from shared.http import to_http
from shared.identity import current_user_id
from .schemas import LessonProgressIn, LessonProgressOut, ProgressSummary


def build_router(engine):
    router = APIRouter()

    @router.put("/lessons/{lesson_id}", response_model=LessonProgressOut)
    def set_lesson(lesson_id: int, payload: LessonProgressIn, request: Request):
        uid = current_user_id(request)
        try:
            out = engine.set_lesson_progress(uid, lesson_id, payload.course_id, payload.percent)
        except EngineError as e:
            raise to_http(e)
        c = out.change
        return LessonProgressOut(
            lesson_id=c.lesson_id,
            course_id=c.course_id,
            lesson_percentage=c.lesson_percentage,
            lesson_completed=c.lesson_completed,
            course_percentage=c.course_percentage,
            course_completed=c.course_completed,
            unlocked=[asdict(u) for u in out.unlocked],
        )

    @router.get("/summary", response_model=ProgressSummary)
    def summary(request: Request):
        uid = current_user_id(request)
        try:
            return engine.get_progress_summary(uid)
        except EngineError as e:
            raise to_http(e)

    return router
