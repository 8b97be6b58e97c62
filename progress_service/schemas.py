from datetime import datetime
from pydantic import BaseModel, Field

class LessonProgressIn(BaseModel):
    course_id: int
    percent: float = Field(allow_inf_nan=False, description="Self-reported progress; clamped to 0-100")

class LessonProgressOut(BaseModel):
    lesson_id: int
    course_id: int
    lesson_percentage: int
    lesson_completed: bool
    course_percentage: int
    course_completed: bool
    unlocked: list[dict] = Field(default_factory=list)

class LessonStat(BaseModel):
    id: int
    title: str | None = None
    progress: int
    completed: bool
    completed_at: datetime | None = None
    started_at: datetime | None = None
    sequence_order: int | None = None

class LessonStats(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    average_progress: float = 0.0
    lessons: list[LessonStat] = Field(default_factory=list)

class QuizStat(BaseModel):
    id: int
    attempt_id: int
    title: str
    score: int
    passed: bool
    completed_at: datetime | None = None
    passing_score: int | None = None

class QuizStats(BaseModel):
    total: int = 0
    passed: int = 0
    average_score: float = 0.0
    perfect_scores: int = 0
    quizzes: list[QuizStat] = Field(default_factory=list)

class CourseSummary(BaseModel):
    course_id: int
    title: str | None = None
    percentage: int
    completed: bool
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_accessed: datetime | None = None
    lesson_stats: LessonStats
    quiz_stats: QuizStats

class OverallQuizStats(BaseModel):
    total: int = 0
    passed: int = 0
    perfect_scores: int = 0
    average_score: float = 0.0

class AchievementStats(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    completion_percentage: int = 0
    total_points_earned: int = 0

class ProgressSummary(BaseModel):
    user_id: int
    courses: list[CourseSummary]
    quiz_stats: OverallQuizStats
    achievement_stats: AchievementStats
    overall_progress: float
    last_updated: datetime
