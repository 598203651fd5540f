from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from craftguide.schemas.enums import EventKind


class TrackEventRequest(BaseModel):
    kind: EventKind
    template_id: Optional[str] = None
    step_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EventRecordResponse(BaseModel):
    user_id: str
    kind: EventKind
    template_id: Optional[str] = None
    step_id: Optional[str] = None
    occurred_at: datetime
