from pydantic import BaseModel, Field

class OptionOut(BaseModel):
    id: int
    text: str

class QuestionOut(BaseModel):
    id: int
    text: str
    question_type: str
    points: float
    options: list[OptionOut]

class AttemptStartOut(BaseModel):
    attempt_id: int
    quiz_id: int
    title: str
    passing_score: int
    questions: list[QuestionOut]
    time_remaining: int | None = None
    time_display: str | None = None

class AnswerIn(BaseModel):
    selected_option_ids: list[int] = Field(default_factory=list)

class TickIn(BaseModel):
    seconds: int = Field(default=1, ge=0)

class QuestionResultOut(BaseModel):
    question_id: int
    selected_option_ids: list[int]
    is_correct: bool
    points_earned: float
    points_possible: float

class AttemptResultOut(BaseModel):
    attempt_id: int
    total_earned: float
    total_possible: float
    percentage: int
    passed: bool
    questions: list[QuestionResultOut]

class SessionStateOut(BaseModel):
    attempt_id: int
    state: str
    time_remaining: int | None = None
    time_display: str | None = None
    answered: int = 0
    result: AttemptResultOut | None = None
    unlocked: list[dict] = Field(default_factory=list)
