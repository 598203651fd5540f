from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from craftguide.core import analytics_config as cfg


# ---------- completion ----------
class CompletionStats(BaseModel):
    started: int = 0
    completed: int = 0
    completion_rate: float = 0.0
    average_completion_minutes: float = 0.0
    median_completion_minutes: float = 0.0


# ---------- steps ----------
class StepAnalytics(BaseModel):
    template_id: str
    step_id: str
    step_name: str
    view_count: int = 0
    completion_count: int = 0
    skip_count: int = 0
    drop_off_rate: float = 0.0
    average_seconds_spent: float = 0.0
    common_errors: List[str] = []


class FunnelStage(BaseModel):
    template_id: str
    step_id: str
    step: str
    entered: int = 0
    completed: int = 0
    conversion_rate: float = 0.0
    drop_off_count: int = 0


# ---------- time to first project ----------
class Percentiles(BaseModel):
    p25: float = 0.0
    p75: float = 0.0
    p90: float = 0.0


class TimeToFirstProject(BaseModel):
    average_hours: float = 0.0
    median_hours: float = 0.0
    percentiles: Percentiles = Field(default_factory=Percentiles)
    sample_size: int = 0


# ---------- cohorts ----------
class Cohort(BaseModel):
    start_date: str
    user_count: int
    completion_rate: float
    average_minutes: float


class CohortAnalysis(BaseModel):
    period: str = cfg.COHORT_PERIOD
    cohorts: List[Cohort] = []


class Diagnostics(BaseModel):
    records_read: int = 0
    skipped_records: int = 0


# ---------- rollup ----------
class OnboardingAnalyticsData(BaseModel):
    total_users: int = 0
    completion_stats: CompletionStats = Field(default_factory=CompletionStats)
    step_analytics: List[StepAnalytics] = []
    funnel_analysis: List[FunnelStage] = []
    time_to_first_project: TimeToFirstProject = Field(default_factory=TimeToFirstProject)
    cohort_analysis: CohortAnalysis = Field(default_factory=CohortAnalysis)
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


class UserJourneyMetrics(BaseModel):
    user_id: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_minutes: Optional[float] = None
    steps_completed: int = 0
    steps_skipped: int = 0
    tutorials_completed: int = 0
    first_project_started: bool = False
    first_project_completed: bool = False
    drop_off_point: Optional[str] = None


class AtRiskUser(BaseModel):
    user_id: str
    risk_score: float
    reason: str
    idle_hours: float


# ---------- insights ----------
class InsightThresholds(BaseModel):
    high_drop_off: float = Field(cfg.HIGH_DROP_OFF_PERCENT, ge=0.0, le=100.0)
    moderate_drop_off: float = Field(cfg.MODERATE_DROP_OFF_PERCENT, ge=0.0, le=100.0)
    low_completion_rate: float = Field(cfg.LOW_COMPLETION_RATE_PERCENT, ge=0.0, le=100.0)
    excellent_completion_rate: float = Field(cfg.EXCELLENT_COMPLETION_RATE_PERCENT, ge=0.0, le=100.0)
    slow_first_project_hours: float = Field(cfg.SLOW_FIRST_PROJECT_HOURS, ge=0.0)
    high_skip_rate: float = Field(cfg.HIGH_SKIP_RATE_PERCENT, ge=0.0, le=100.0)
    min_users: int = Field(cfg.MIN_USERS_FOR_INSIGHTS, ge=0)


class InsightsResponse(BaseModel):
    insights: List[str]
