from sqlalchemy import func
from sqlalchemy.orm import Session
from .models import Achievement, AchievementProgress, AchievementEvent, PointTransaction

def achievements_for(db: Session, criteria: str) -> list[Achievement]:
    return db.query(Achievement).filter(Achievement.criteria == criteria).order_by(Achievement.id.asc()).all()

def get_progress(db: Session, user_id: int, achievement_id: int) -> AchievementProgress | None:
    return (
        db.query(AchievementProgress)
        .filter(AchievementProgress.user_id == user_id, AchievementProgress.achievement_id == achievement_id)
        .first()
    )

def event_seen(db: Session, user_id: int, achievement_id: int, source_key: str) -> bool:
    return (
        db.query(AchievementEvent.id)
        .filter(
            AchievementEvent.user_id == user_id,
            AchievementEvent.achievement_id == achievement_id,
            AchievementEvent.source_key == source_key,
        )
        .first()
        is not None
    )

def achievement_summary(db: Session, user_id: int) -> dict:
    total = db.query(func.count(Achievement.id)).scalar() or 0
    completed = (
        db.query(func.count(AchievementProgress.id))
        .filter(AchievementProgress.user_id == user_id, AchievementProgress.completed.is_(True))
        .scalar()
        or 0
    )
    in_progress = (
        db.query(func.count(AchievementProgress.id))
        .filter(
            AchievementProgress.user_id == user_id,
            AchievementProgress.completed.is_(False),
            AchievementProgress.progress > 0,
        )
        .scalar()
        or 0
    )
    points = (
        db.query(func.coalesce(func.sum(PointTransaction.amount), 0))
        .filter(PointTransaction.user_id == user_id, PointTransaction.reference_type == "achievement")
        .scalar()
        or 0
    )
    return {
        "total": int(total),
        "completed": int(completed),
        "in_progress": int(in_progress),
        "completion_percentage": (int(completed) * 100) // int(total) if total else 0,
        "total_points_earned": int(points),
    }
