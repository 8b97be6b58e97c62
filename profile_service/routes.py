from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from shared.database import db_dependency
from shared.errors import EngineError
from shared.http import to_http
from shared.identity import current_user_id
from .bootstrap import ProfileBootstrap
from .schemas import ProfileOut


def build_router(SessionLocal, bootstrap: ProfileBootstrap):
    router = APIRouter()
    get_db = db_dependency(SessionLocal)

    @router.get("/me", response_model=ProfileOut)
    def me(request: Request, db: Session = Depends(get_db)):
        uid = current_user_id(request)
        try:
            p = bootstrap.ensure(db, uid)
        except EngineError as e:
            raise to_http(e)
        return ProfileOut(
            user_id=p.user_id,
            first_name=p.first_name,
            last_name=p.last_name,
            role=p.role,
            onboarding_completed=p.onboarding_completed,
            joined_at=p.joined_at,
        )

    return router
