import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _get_env(name: str, default: Optional[str] = None) -> str:
    val = os.getenv(name, default)
    if val is None or val.strip() == "":
        raise RuntimeError(f"Missing required environment variable: {name}")
    return val.strip()


def _parse_origins(raw: str) -> list[str]:
    raw = (raw or "").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./learning.db"
    default_passing_score: int = 70
    streak_service_url: str | None = None
    streak_service_timeout: float = 5.0
    profile_bootstrap_attempts: int = 3
    session_idle_minutes: int = 120
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)


def load_settings() -> Settings:
    load_dotenv()

    streak_url = (os.getenv("STREAK_SERVICE_URL") or "").strip().rstrip("/")

    return Settings(
        database_url=_get_env("DATABASE_URL", "sqlite:///./learning.db"),
        default_passing_score=int(_get_env("DEFAULT_PASSING_SCORE", "70")),
        streak_service_url=streak_url or None,
        streak_service_timeout=float(_get_env("STREAK_SERVICE_TIMEOUT", "5.0")),
        profile_bootstrap_attempts=int(_get_env("PROFILE_BOOTSTRAP_ATTEMPTS", "3")),
        session_idle_minutes=int(_get_env("SESSION_IDLE_MINUTES", "120")),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(_parse_origins(os.getenv("CORS_ORIGINS", "*"))),
    )
