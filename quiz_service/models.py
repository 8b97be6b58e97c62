from datetime import datetime

from sqlalchemy import Integer, String, Text, Boolean, Float, DateTime, ForeignKey, JSON, Index, text
from sqlalchemy.orm import Mapped, mapped_column
from shared.database import Base

class Quiz(Base):
    __tablename__ = "quiz"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(Integer, ForeignKey("course.id"), index=True)
    lesson_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("lesson.id"), nullable=True)
    title: Mapped[str] = mapped_column(String(255))
    passing_score: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-100, None -> default
    time_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)     # minutes

class Question(Base):
    __tablename__ = "quiz_question"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quiz_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz.id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    question_type: Mapped[str] = mapped_column(String(30))  # single_choice/true_false/multiple_answer
    points: Mapped[float] = mapped_column(Float, default=1.0)
    sequence_order: Mapped[int] = mapped_column(Integer, default=0)

class Option(Base):
    __tablename__ = "quiz_option"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz_question.id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    sequence_order: Mapped[int] = mapped_column(Integer, default=0)

class Attempt(Base):
    __tablename__ = "quiz_attempt"
    # at most one open attempt per (user, quiz)
    __table_args__ = (
        Index(
            "uq_quiz_attempt_open",
            "user_id", "quiz_id",
            unique=True,
            sqlite_where=text("completed = 0"),
            postgresql_where=text("completed = false"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quiz_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz.id"), index=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime)
    end_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

class Response(Base):
    __tablename__ = "quiz_response"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attempt_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz_attempt.id"), index=True)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz_question.id"), index=True)
    selected_option_ids: Mapped[list] = mapped_column(JSON, default=list)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    points_earned: Mapped[float] = mapped_column(Float, default=0.0)
