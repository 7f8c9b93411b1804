"""GenerationRecord model for paid coloring-page generations."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from database import Base


class GenerationRecord(Base):
    """Parameters and cost of one completed coloring-page generation."""

    __tablename__ = "generations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    image_filename = Column(String, nullable=False)
    prompt_type = Column(String, nullable=False)
    prompt_text = Column(Text, nullable=False)
    name_message = Column(String, nullable=True)
    background_type = Column(String, nullable=True)
    activity_interest = Column(String, nullable=True)
    credits_used = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
