import enum
import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from src.models import Base


class AuditChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SubscriptionAuditReason(str, enum.Enum):
    USER_SIGNUP = "user_signup"
    USER_UNSUBSCRIBE = "user_unsubscribe"
    ADMIN_ACTION = "admin_action"
    SYSTEM_MIGRATION = "system_migration"
    BOUNCE_HANDLING = "bounce_handling"
    REACTIVATION = "reactivation"


class SubscriptionAudit(Base):
    """Append-only record of a subscription insert or status change."""

    __tablename__ = "subscriptions_audit"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subscription_id = Column(String(36), ForeignKey("subscriptions.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    change_type = Column(String, nullable=False)
    reason = Column(String, nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<SubscriptionAudit(subscription_id={self.subscription_id}, change={self.change_type}, reason={self.reason})>"
