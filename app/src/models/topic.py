from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from src.models import Base


class Topic(Base):
    """One position in a subject's syllabus; `sequence_order` is its day number."""

    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    topic_data = Column(JSON, nullable=False, default=dict)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False, index=True)
    sequence_order = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    issue = relationship("Issue", back_populates="topic", uselist=False)

    __table_args__ = (
        Index("topic_subject_sequence_idx", "subject_id", "sequence_order"),
    )

    def __repr__(self):
        return f"<Topic(id={self.id}, subject_id={self.subject_id}, sequence={self.sequence_order})>"
