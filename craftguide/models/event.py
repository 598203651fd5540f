from sqlalchemy import Column, Integer, String, DateTime, JSON, Index

from craftguide.core.db import Base


class OnboardingEvent(Base):
    __tablename__ = "onboarding_event"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=True, index=True)

    # EventKind value; kept as plain text so unknown kinds load and get skipped
    kind = Column(String(32), nullable=True)

    template_id = Column(String, nullable=True)
    step_id = Column(String, nullable=True)

    # nullable so imported legacy rows survive; analytics skips them
    occurred_at = Column(DateTime, nullable=True)

    meta = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_onboarding_event_occurred", "occurred_at"),
    )
