from enum import Enum

class CraftType(str, Enum):
    woodworking = "woodworking"
    metalworking = "metalworking"
    leathercraft = "leathercraft"
    pottery = "pottery"
    weaving = "weaving"
    blacksmithing = "blacksmithing"
    bushcraft = "bushcraft"
    stonemasonry = "stonemasonry"
    glassblowing = "glassblowing"
    jewelry = "jewelry"
    general = "general"

class SkillLevel(str, Enum):
    novice = "novice"
    apprentice = "apprentice"
    journeyman = "journeyman"
    craftsman = "craftsman"
    master = "master"

class Difficulty(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"
    expert = "expert"

class EventKind(str, Enum):
    step_viewed = "step_viewed"
    step_completed = "step_completed"
    step_skipped = "step_skipped"
    step_error = "step_error"
    tutorial_completed = "tutorial_completed"
    project_started = "project_started"
    project_completed = "project_completed"

STEP_EVENT_KINDS = frozenset(
    {EventKind.step_viewed, EventKind.step_completed, EventKind.step_skipped, EventKind.step_error}
)

class GuidanceStatus(str, Enum):
    not_started = "not_started"
    in_progress = "in_progress"
    completed = "completed"

class FeedbackDifficulty(str, Enum):
    too_easy = "too-easy"
    just_right = "just-right"
    too_hard = "too-hard"

class InsightSeverity(str, Enum):
    critical = "critical"
    warning = "warning"
    info = "info"
    positive = "positive"
