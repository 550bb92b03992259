from pydantic import BaseModel
from typing import Optional

from mockingbird.utils.enums import ReviewState


class Review(BaseModel):
    overall_score: float
    assessment_label: Optional[str] = None
    recommendation: Optional[str] = None
    communication: Optional[float] = None
    technical: Optional[float] = None
    problem_solving: Optional[float] = None
    experience: Optional[float] = None
    summary: Optional[str] = None

    class Config:
        extra = "allow"


class ReviewCycleResponse(BaseModel):
    state: ReviewState
    attempt: int
    max_retries: int
    elapsed_ms: int
    progress: int
    next_delay_ms: Optional[int] = None
    review: Optional[Review] = None
    error: Optional[str] = None
