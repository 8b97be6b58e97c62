# api_gateway/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from achievement_service.routes import build_router as build_achievement_router
from achievement_service.streaks import StreakClient
from profile_service.routes import build_router as build_profile_router
from progress_service.routes import build_router as build_progress_router
from quiz_service.routes import build_router as build_quiz_router
from shared.config import Settings, load_settings
from shared.database import Base, make_engine, make_session_factory
from .engine import LearningEngine

logger = logging.getLogger("api-gateway")


def create_tables(engine: Engine) -> None:
    # registers every table on Base.metadata
    import course_service.models  # noqa: F401
    import quiz_service.models  # noqa: F401
    import progress_service.models  # noqa: F401
    import achievement_service.models  # noqa: F401
    import profile_service.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def create_app(
    settings: Optional[Settings] = None,
    SessionLocal: Optional[sessionmaker[Session]] = None,
    streak_client: Optional[StreakClient] = None,
) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    if SessionLocal is None:
        db_engine = make_engine(settings.database_url)
        create_tables(db_engine)
        SessionLocal = make_session_factory(db_engine)

    owns_streak_client = False
    if streak_client is None and settings.streak_service_url:
        streak_client = StreakClient(settings.streak_service_url, timeout=settings.streak_service_timeout)
        owns_streak_client = True

    engine = LearningEngine(SessionLocal, settings, streak_client=streak_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_streak_client and streak_client is not None:
            streak_client.close()

    app = FastAPI(title="Learning Engine", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine

    origins = list(settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # Browsers reject "*" with credentials
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(build_quiz_router(engine), prefix="/quiz", tags=["quiz"])
    app.include_router(build_progress_router(engine), prefix="/progress", tags=["progress"])
    app.include_router(build_achievement_router(engine), prefix="/achievements", tags=["achievements"])
    app.include_router(build_profile_router(SessionLocal, engine.profiles), prefix="/profile", tags=["profile"])

    @app.get("/health")
    def health():
        return {"status": "ok"}

    logger.info(
        "learning engine ready (db=%s, streaks=%s)",
        settings.database_url.split(":", 1)[0], bool(streak_client),
    )
    return app
