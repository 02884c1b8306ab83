import enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from src.models import Base


class IssueStatus(str, enum.Enum):
    GENERATING = "generating"
    DRAFT = "draft"
    FAILED = "failed"
    APPROVED = "approved"
    SENT = "sent"


class Issue(Base):
    """A generated newsletter for one topic (1:1 with topics)."""

    __tablename__ = "issues"

    id = Column(Integer, primary_key=True, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    content = Column(JSON, nullable=True)  # Structured newsletter sections from the generator
    html_content = Column(Text, nullable=True)  # Rendered body containing {{UNSUBSCRIBE_URL}}
    text_content = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=IssueStatus.GENERATING.value, index=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    approved_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    topic = relationship("Topic", back_populates="issue")
    deliveries = relationship("Delivery", back_populates="issue")

    def __repr__(self):
        return f"<Issue(id={self.id}, topic_id={self.topic_id}, status={self.status})>"
