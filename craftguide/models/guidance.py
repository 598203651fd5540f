import uuid
from sqlalchemy import (
    Column,
    Boolean,
    Integer,
    String,
    Text,
    DateTime,
    JSON,
    Index,
    func
)
from craftguide.core.db import Base


class Guidance(Base):
    __tablename__ = "guidance"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    template_id = Column(String, nullable=False)

    current_step_index = Column(Integer, nullable=False, default=0)

    # stored sorted: ["measure-cut", "sand-smooth"]
    completed_step_ids = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)

    # encouragement shown alongside the steps, appended on start and completion
    notes = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    feedback_difficulty = Column(String, nullable=True)
    feedback_helpfulness = Column(Integer, nullable=True)
    feedback_suggestions = Column(Text, nullable=True)

    updated_at = Column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    __table_args__ = (
        Index("idx_guidance_user_template", "user_id", "template_id"),
    )
