from dataclasses import asdict

from fastapi import APIRouter, Request

from shared.errors import EngineError
from shared.http import to_http
from shared.identity import current_user_id


def build_router(engine):
    router = APIRouter()

    @router.post("/streak-sync", response_model=dict)
    def streak_sync(request: Request):
        uid = current_user_id(request)
        try:
            unlocked = engine.sync_login_streak(uid)
        except EngineError as e:
            raise to_http(e)
        return {"unlocked": [asdict(u) for u in unlocked]}

    @router.post("/recheck", response_model=dict)
    def recheck(request: Request):
        uid = current_user_id(request)
        try:
            unlocked = engine.recheck_achievements(uid)
        except EngineError as e:
            raise to_http(e)
        return {"unlocked": [asdict(u) for u in unlocked]}

    return router
