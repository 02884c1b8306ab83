"""
Pydantic schemas for the delivery ledger.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.models.delivery import DeliveryStatus


class DeliveryStatusUpdate(BaseModel):
    """Outcome for one user; None fields leave the stored column untouched."""

    user_id: str
    status: DeliveryStatus
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class IssueDeliveryMetrics(BaseModel):
    """Delivery counts for one issue."""

    issue_id: int
    title: str
    sent_at: Optional[datetime] = None
    total: int = Field(ge=0)
    sent: int = Field(ge=0, description="Deliveries in sent or delivered status")
    pending: int = Field(ge=0)
    failed: int = Field(ge=0, description="Deliveries in failed or bounced status")
    success_rate: float = Field(ge=0, le=1)
