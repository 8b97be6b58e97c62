from datetime import datetime
from pydantic import BaseModel

class ProfileOut(BaseModel):
    user_id: int
    first_name: str
    last_name: str
    role: str
    onboarding_completed: bool
    joined_at: datetime
