from typing import List, Optional
from pydantic import BaseModel, Field

from craftguide.schemas.enums import CraftType, Difficulty, SkillLevel


# ---------- catalog ----------
class ProjectStep(BaseModel):
    id: str
    title: str
    description: str
    estimated_minutes: int = Field(..., ge=0)
    instructions: List[str] = []
    photo_required: bool = False
    tips: List[str] = []
    common_mistakes: Optional[List[str]] = None
    safety_notes: Optional[List[str]] = None
    success_criteria: Optional[List[str]] = None

    class Config:
        frozen = True


class ProjectTemplate(BaseModel):
    id: str
    name: str
    description: str
    craft_type: CraftType
    skill_level: SkillLevel
    difficulty: Difficulty
    estimated_minutes: int = Field(..., ge=0)
    steps: List[ProjectStep]
    materials: List[str] = []
    tools: List[str] = []
    tips: List[str] = []
    is_popular: bool = False
    completion_rate: float = Field(0.0, ge=0.0, le=100.0)

    class Config:
        frozen = True

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    def index_of(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return None


# ---------- recommendation ----------
class UserProfile(BaseModel):
    craft_interests: List[CraftType] = []
    skill_level: SkillLevel = SkillLevel.novice
