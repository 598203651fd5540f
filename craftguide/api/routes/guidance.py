from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from craftguide.api.deps import get_guidance_service
from craftguide.core.auth import get_current_user_id
from craftguide.core.errors import (
    InvalidFeedback,
    NoActiveGuidance,
    TemplateNotFound,
    UnknownStep,
)
from craftguide.schemas.enums import GuidanceStatus
from craftguide.schemas.guidance import (
    CurrentStepResponse,
    GuidanceFeedback,
    GuidanceFeedbackRequest,
    GuidanceProgressResponse,
    GuidanceStartRequest,
    GuidanceStateResponse,
)
from craftguide.services.event_store import GuidanceState
from craftguide.services.guidance import GuidanceService

router = APIRouter(prefix="/guidance", tags=["guidance"])


def to_response(state: GuidanceState, service: GuidanceService) -> GuidanceStateResponse:
    template = service.catalog.get_template(state.template_id)
    feedback = None
    if state.feedback is not None:
        feedback = GuidanceFeedback(
            difficulty=state.feedback.difficulty,
            helpfulness=state.feedback.helpfulness,
            suggestions=state.feedback.suggestions,
        )
    return GuidanceStateResponse(
        id=state.id,
        user_id=state.user_id,
        template_id=state.template_id,
        status=state.status,
        current_step_index=state.current_step_index,
        total_steps=len(template.steps) if template else 0,
        completed_step_ids=sorted(state.completed_step_ids),
        created_at=state.created_at,
        completed_at=state.completed_at,
        feedback=feedback,
        notes=list(state.notes),
    )


# ----------------------------
# START
# ----------------------------
@router.post("/start", response_model=GuidanceStateResponse)
def start_guidance(
    payload: GuidanceStartRequest,
    service: GuidanceService = Depends(get_guidance_service),
    user_id: str = Depends(get_current_user_id),
):
    logger.info(f"Guidance start | user={user_id} template={payload.template_id}")

    try:
        state = service.start_guidance(user_id, payload.template_id)
    except TemplateNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return to_response(state, service)


# ----------------------------
# COMPLETE STEP
# ----------------------------
@router.post("/steps/{step_id}/complete", response_model=GuidanceStateResponse)
def complete_step(
    step_id: str,
    duration_seconds: Optional[float] = None,
    service: GuidanceService = Depends(get_guidance_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        state = service.complete_step(user_id, step_id, duration_seconds=duration_seconds)
    except NoActiveGuidance as e:
        raise HTTPException(status_code=409, detail=str(e))
    except UnknownStep as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TemplateNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return to_response(state, service)


# ----------------------------
# PROGRESS
# ----------------------------
@router.get("/progress", response_model=GuidanceProgressResponse)
def get_progress(
    template_id: Optional[str] = None,
    service: GuidanceService = Depends(get_guidance_service),
    user_id: str = Depends(get_current_user_id),
):
    if template_id:
        state = service.get_progress(user_id, template_id)
    else:
        state = service.get_guidance_progress(user_id)

    if state is None:
        return GuidanceProgressResponse(status=GuidanceStatus.not_started)

    return GuidanceProgressResponse(status=state.status, guidance=to_response(state, service))


@router.get("/current-step", response_model=CurrentStepResponse)
def get_current_step(
    service: GuidanceService = Depends(get_guidance_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        state, template, step = service.get_current_step(user_id)
    except NoActiveGuidance as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TemplateNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return CurrentStepResponse(
        template_id=template.id,
        template_complete=step is None,
        step_index=state.current_step_index,
        step=step,
    )


# ----------------------------
# FEEDBACK
# ----------------------------
@router.post("/feedback", response_model=GuidanceStateResponse)
def submit_feedback(
    payload: GuidanceFeedbackRequest,
    service: GuidanceService = Depends(get_guidance_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        state = service.submit_feedback(
            user_id,
            payload.difficulty,
            payload.helpfulness,
            payload.suggestions,
        )
    except NoActiveGuidance as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidFeedback as e:
        raise HTTPException(status_code=422, detail=str(e))

    return to_response(state, service)
