"""
Make sure a learner profile exists before the learner's first write.

A small state machine with one bounded retry policy:

    FETCH --found--> READY
    FETCH --missing--> CREATE
    CREATE --ok--> READY
    CREATE --lost a race (IntegrityError)--> FETCH
    CREATE --other store error--> CREATE
    any retry beyond RetryPolicy.max_attempts --> FAILED

FAILED raises PersistenceFailure; there is no further fallback path.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from shared.clock import utcnow
from shared.errors import PersistenceFailure
from .crud import get_profile, create_profile
from .models import LearnerProfile

logger = logging.getLogger("profile-service")


class BootstrapState(str, Enum):
    FETCH = "fetch"
    CREATE = "create"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3

    def allows(self, attempts: int) -> bool:
        return attempts < self.max_attempts


@dataclass
class ProfileBootstrap:
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    clock: Callable = utcnow

    def ensure(self, db: Session, user_id: int, defaults: dict | None = None) -> LearnerProfile:
        state = BootstrapState.FETCH
        attempts = 0
        profile: LearnerProfile | None = None

        while state not in (BootstrapState.READY, BootstrapState.FAILED):
            if state is BootstrapState.FETCH:
                profile = get_profile(db, user_id)
                state = BootstrapState.READY if profile else BootstrapState.CREATE
                continue

            attempts += 1
            payload = {"role": "trainee", "onboarding_completed": False, "joined_at": self.clock()}
            payload.update(defaults or {})
            try:
                profile = create_profile(db, user_id, payload)
                state = BootstrapState.READY
                logger.info("created learner profile for user %s", user_id)
            except IntegrityError:
                db.rollback()
                logger.warning("profile create for user %s lost a race (attempt %s)", user_id, attempts)
                state = BootstrapState.FETCH if self.policy.allows(attempts) else BootstrapState.FAILED
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning("profile create for user %s failed (attempt %s): %s", user_id, attempts, e)
                state = BootstrapState.CREATE if self.policy.allows(attempts) else BootstrapState.FAILED

        if state is BootstrapState.FAILED or profile is None:
            logger.error("giving up on profile for user %s after %s attempts", user_id, attempts)
            raise PersistenceFailure(f"could not create profile for user {user_id}")
        return profile
