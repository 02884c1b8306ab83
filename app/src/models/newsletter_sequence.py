from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlalchemy.sql import func

from src.models import Base


class NewsletterSequence(Base):
    """Per-subject pointer to the topic that is "today's" issue."""

    __tablename__ = "newsletter_sequence"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False, unique=True, index=True)
    current_sequence = Column(Integer, nullable=False, default=1)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
