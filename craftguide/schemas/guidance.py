from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from craftguide.schemas.base import BaseSchema
from craftguide.schemas.enums import FeedbackDifficulty, GuidanceStatus
from craftguide.schemas.templates import ProjectStep


# ---------- start ----------
class GuidanceStartRequest(BaseModel):
    template_id: str = Field(..., min_length=1)


# ---------- feedback ----------
class GuidanceFeedbackRequest(BaseModel):
    difficulty: FeedbackDifficulty
    helpfulness: int = Field(..., ge=1, le=5)
    suggestions: Optional[str] = None


class GuidanceFeedback(BaseSchema):
    difficulty: FeedbackDifficulty
    helpfulness: int
    suggestions: Optional[str] = None


# ---------- shared ----------
class GuidanceStateResponse(BaseSchema):
    id: str
    user_id: str
    template_id: str
    status: GuidanceStatus
    current_step_index: int
    total_steps: int
    completed_step_ids: List[str]
    created_at: datetime
    completed_at: Optional[datetime] = None
    feedback: Optional[GuidanceFeedback] = None
    notes: List[str] = []


class GuidanceProgressResponse(BaseModel):
    status: GuidanceStatus
    guidance: Optional[GuidanceStateResponse] = None


class CurrentStepResponse(BaseModel):
    template_id: str
    template_complete: bool
    step_index: int
    step: Optional[ProjectStep] = None
