from sqlalchemy.orm import Session
from .models import LearnerProfile


def get_profile(db: Session, user_id: int) -> LearnerProfile | None:
    return db.query(LearnerProfile).filter(LearnerProfile.user_id == user_id).first()


def create_profile(db: Session, user_id: int, payload: dict) -> LearnerProfile:
    p = LearnerProfile(user_id=user_id, **payload)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p
