from fastapi import APIRouter, Depends, HTTPException

from craftguide.api.deps import get_guidance_service
from craftguide.core.auth import get_current_user_id
from craftguide.core.errors import InvalidEvent, TemplateNotFound, UnknownStep
from craftguide.schemas.events import EventRecordResponse, TrackEventRequest
from craftguide.services.guidance import GuidanceService

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventRecordResponse, status_code=201)
def track_event(
    payload: TrackEventRequest,
    service: GuidanceService = Depends(get_guidance_service),
    user_id: str = Depends(get_current_user_id),
):
    try:
        record = service.track_event(
            user_id,
            payload.kind,
            template_id=payload.template_id,
            step_id=payload.step_id,
            metadata=payload.metadata,
        )
    except TemplateNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UnknownStep as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidEvent as e:
        raise HTTPException(status_code=422, detail=str(e))

    return EventRecordResponse(
        user_id=record.user_id,
        kind=record.kind,
        template_id=record.template_id,
        step_id=record.step_id,
        occurred_at=record.occurred_at,
    )
