from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from src.models import Base


class Subject(Base):
    """A newsletter line (e.g. "System Design") that users subscribe to."""

    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
