from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from src.models import Base


class NewsletterSendResult(Base):
    """History row for one broadcast attempt; reporting only."""

    __tablename__ = "newsletter_send_results"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)  # e.g. "Consistent Hashing - Daily Issue"
    issue_id = Column(Integer, ForeignKey("issues.id"), nullable=False, index=True)
    total_sent = Column(Integer, nullable=False, default=0)
    total_failed = Column(Integer, nullable=False, default=0)
    failed_user_ids = Column(JSON, nullable=False, default=list)
    start_time = Column(DateTime(timezone=True), nullable=False)
    completion_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
