from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from loguru import logger
from pydantic import ValidationError

from craftguide.api.deps import get_analytics_engine
from craftguide.core.errors import DataUnavailable, TemplateNotFound
from craftguide.schemas.analytics import (
    AtRiskUser,
    InsightsResponse,
    InsightThresholds,
    OnboardingAnalyticsData,
    UserJourneyMetrics,
)
from craftguide.core import analytics_config as cfg
from craftguide.services.analytics import AnalyticsEngine
from craftguide.services.event_store import as_naive_utc

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _window(start: Optional[datetime], end: Optional[datetime]):
    # offsets may differ per bound; compare and query in naive UTC
    start, end = as_naive_utc(start), as_naive_utc(end)
    if start and end and start > end:
        raise HTTPException(status_code=422, detail="start must not be after end")
    return start, end


def get_thresholds(
    high_drop_off: Optional[float] = Query(None),
    moderate_drop_off: Optional[float] = Query(None),
    low_completion_rate: Optional[float] = Query(None),
    excellent_completion_rate: Optional[float] = Query(None),
    slow_first_project_hours: Optional[float] = Query(None),
    high_skip_rate: Optional[float] = Query(None),
    min_users: Optional[int] = Query(None),
) -> InsightThresholds:
    overrides = {
        "high_drop_off": high_drop_off,
        "moderate_drop_off": moderate_drop_off,
        "low_completion_rate": low_completion_rate,
        "excellent_completion_rate": excellent_completion_rate,
        "slow_first_project_hours": slow_first_project_hours,
        "high_skip_rate": high_skip_rate,
        "min_users": min_users,
    }
    try:
        return InsightThresholds(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))


# ----------------------------
# ONBOARDING ROLLUP
# ----------------------------
@router.get("/onboarding", response_model=OnboardingAnalyticsData)
def onboarding_analytics(
    response: Response,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    template_id: Optional[str] = None,
    allow_stale: bool = False,
    engine: AnalyticsEngine = Depends(get_analytics_engine),
):
    start, end = _window(start, end)

    try:
        return engine.get_onboarding_analytics(start=start, end=end, template_id=template_id)
    except TemplateNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataUnavailable as e:
        snapshot = engine.last_snapshot(start=start, end=end, template_id=template_id) if allow_stale else None
        if snapshot is None:
            logger.warning(f"Onboarding analytics unavailable | error={e}")
            raise HTTPException(status_code=503, detail=str(e))

        logger.warning(f"Serving stale onboarding analytics | error={e}")
        response.headers["X-Analytics-Stale"] = "true"
        return snapshot


# ----------------------------
# USER JOURNEY
# ----------------------------
@router.get("/users/{user_id}/journey", response_model=UserJourneyMetrics)
def user_journey(
    user_id: str,
    engine: AnalyticsEngine = Depends(get_analytics_engine),
):
    try:
        return engine.get_user_journey_metrics(user_id)
    except DataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


# ----------------------------
# INSIGHTS
# ----------------------------
@router.get("/insights", response_model=InsightsResponse)
def insights(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    thresholds: InsightThresholds = Depends(get_thresholds),
    engine: AnalyticsEngine = Depends(get_analytics_engine),
):
    start, end = _window(start, end)

    try:
        messages = engine.generate_insights(thresholds, start=start, end=end)
    except DataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    return InsightsResponse(insights=messages)


# ----------------------------
# AT-RISK USERS
# ----------------------------
@router.get("/at-risk", response_model=List[AtRiskUser])
def at_risk_users(
    stuck_hours: float = Query(cfg.AT_RISK_STUCK_HOURS, ge=0.0),
    idle_hours: float = Query(cfg.AT_RISK_IDLE_HOURS, ge=0.0),
    engine: AnalyticsEngine = Depends(get_analytics_engine),
):
    try:
        return engine.get_at_risk_users(stuck_hours=stuck_hours, idle_hours=idle_hours)
    except DataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
