from datetime import datetime

from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from shared.database import Base

class Achievement(Base):
    __tablename__ = "achievement"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    # lesson_completion | course_completion | quiz_pass | perfect_quiz | login_streak
    criteria: Mapped[str] = mapped_column(String(30), index=True)
    category: Mapped[str] = mapped_column(String(50), default="general")
    points: Mapped[int] = mapped_column(Integer, default=0)
    required_progress: Mapped[int] = mapped_column(Integer, default=1)

class AchievementProgress(Base):
    __tablename__ = "achievement_progress"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id", name="uq_achievement_progress_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    achievement_id: Mapped[int] = mapped_column(Integer, ForeignKey("achievement.id"), index=True)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime)

class AchievementEvent(Base):
    """One row per event that advanced a counter; the key makes redelivery a no-op."""
    __tablename__ = "achievement_event"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", "source_key", name="uq_achievement_event_source"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    achievement_id: Mapped[int] = mapped_column(Integer, ForeignKey("achievement.id"))
    source_key: Mapped[str] = mapped_column(String(100))  # e.g. lesson:7, attempt:42, streak:5
    delta: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime)

class PointTransaction(Base):
    __tablename__ = "point_transaction"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    amount: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(Text, default="")
    reference_type: Mapped[str] = mapped_column(String(30), default="")  # "achievement"
    reference_id: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime)
