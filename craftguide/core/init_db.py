from loguru import logger
from sqlalchemy.engine import Engine

from craftguide.core.db import engine as default_engine, Base

# Import all models so SQLAlchemy registers them
from craftguide.models.guidance import Guidance
from craftguide.models.event import OnboardingEvent

def init_db(bound: Engine | None = None):
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=bound or default_engine)
    logger.info("Database tables created")
