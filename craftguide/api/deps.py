from functools import lru_cache

from craftguide.core.config import TEMPLATE_CATALOG_PATH
from craftguide.core.db import SessionLocal
from craftguide.services.analytics import AnalyticsEngine
from craftguide.services.catalog import TemplateCatalog, default_catalog
from craftguide.services.event_store import EventStore, SqlAlchemyEventStore
from craftguide.services.guidance import GuidanceService


@lru_cache(maxsize=1)
def get_catalog() -> TemplateCatalog:
    return default_catalog(TEMPLATE_CATALOG_PATH)


@lru_cache(maxsize=1)
def get_event_store() -> EventStore:
    return SqlAlchemyEventStore(SessionLocal)


@lru_cache(maxsize=1)
def get_guidance_service() -> GuidanceService:
    return GuidanceService(get_catalog(), get_event_store())


@lru_cache(maxsize=1)
def get_analytics_engine() -> AnalyticsEngine:
    return AnalyticsEngine(get_catalog(), get_event_store())
