import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from src.models import Base


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BOUNCED = "bounced"


# Statuses that make a user a candidate for resend
RETRYABLE_DELIVERY_STATUSES = (
    DeliveryStatus.PENDING.value,
    DeliveryStatus.FAILED.value,
    DeliveryStatus.BOUNCED.value,
)


class Delivery(Base):
    """One delivery attempt record per (issue, user)."""

    __tablename__ = "deliveries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    issue_id = Column(Integer, ForeignKey("issues.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default=DeliveryStatus.PENDING.value, index=True)
    external_id = Column(String, nullable=True, index=True)  # Transport message id
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    issue = relationship("Issue", back_populates="deliveries")
    user = relationship("User", back_populates="deliveries")

    __table_args__ = (
        UniqueConstraint("issue_id", "user_id", name="delivery_issue_user_uq"),
        Index("delivery_created_idx", "created_at"),
    )

    def __repr__(self):
        return f"<Delivery(issue_id={self.issue_id}, user_id={self.user_id}, status={self.status})>"
