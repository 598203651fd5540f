from fastapi import APIRouter

from craftguide.api.routes import analytics
from craftguide.api.routes import events
from craftguide.api.routes import experiments
from craftguide.api.routes import guidance
from craftguide.api.routes import templates

api_router = APIRouter(prefix="/v1")

api_router.include_router(guidance.router, tags=["guidance"])
api_router.include_router(templates.router, tags=["templates"])
api_router.include_router(events.router, tags=["events"])
api_router.include_router(analytics.router, tags=["analytics"])
api_router.include_router(experiments.router, tags=["experiments"])
