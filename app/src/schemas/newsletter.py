"""
Pydantic schemas for issue content, outgoing messages and send results.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from src.models.delivery import DeliveryStatus


class GeneratedNewsletter(BaseModel):
    """What the content generator hands back for a topic."""

    title: Optional[str] = None
    content: Dict[str, Any]
    html: str
    text: str


class IssueContent(BaseModel):
    """Plain copy of the sendable parts of an issue, detached from the session."""

    id: int
    title: str
    html_content: Optional[str] = None
    text_content: Optional[str] = None

    class Config:
        from_attributes = True


class MessageTag(BaseModel):
    name: str
    value: str


class EmailMessage(BaseModel):
    """One rendered, per-recipient message ready for the transport."""

    user_id: str
    to: str
    from_email: str
    subject: str
    html: str
    text: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    tags: List[MessageTag] = Field(default_factory=list)


class SendOutcome(BaseModel):
    """Per-message result reported by the transport."""

    user_id: str
    status: DeliveryStatus
    message_id: Optional[str] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    total_sent: int = 0
    total_failed: int = 0
    failed_user_ids: List[str] = Field(default_factory=list)

    def __add__(self, other: "BatchResult") -> "BatchResult":
        return BatchResult(
            total_sent=self.total_sent + other.total_sent,
            total_failed=self.total_failed + other.total_failed,
            failed_user_ids=self.failed_user_ids + other.failed_user_ids,
        )

    def extend(self, other: "BatchResult") -> None:
        """Accumulate `other` into this result in place."""
        self.total_sent += other.total_sent
        self.total_failed += other.total_failed
        self.failed_user_ids.extend(other.failed_user_ids)

    @property
    def processed(self) -> int:
        return self.total_sent + self.total_failed


class BroadcastResult(BaseModel):
    """Result of a full send to all subscribers of a subject."""

    success: bool
    total_sent: int = 0
    total_failed: int = 0
    failed_user_ids: List[str] = Field(default_factory=list)
    issue_id: int = 0
    sequence_number: int = 0
    processed_users: int = 0
    skipped_users: int = 0
    error: Optional[str] = None


class ResendResult(BaseModel):
    success: bool = True
    total_sent: int = 0
    total_failed: int = 0
    failed_user_ids: List[str] = Field(default_factory=list)
    issue_id: int
    resend_count: int = 0


class SendToAdminRequest(BaseModel):
    topic_id: int = Field(gt=0)
    sequence_number: int = Field(gt=0)


class SendToAdminResult(BaseModel):
    success: bool
    issue_id: int
    message_id: Optional[str] = None


class IssueSummary(BaseModel):
    issue_id: int
    title: str
    sequence_order: int
    sent_at: Optional[datetime] = None


class NewsletterSendResultOut(BaseModel):
    id: int
    name: str
    issue_id: int
    total_sent: int
    total_failed: int
    failed_user_ids: List[str]
    start_time: datetime
    completion_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class UnsubscribeRequest(BaseModel):
    token: str


class BounceNotification(BaseModel):
    """Bounce fact delivered by the provider webhook (already verified upstream)."""

    bounce_type: str = "Permanent"
    emails: List[EmailStr]


class IssueSummaryPage(BaseModel):
    subject_id: int
    page: int
    per_page: int
    total: int
    items: List[IssueSummary]


class IssueActions(BaseModel):
    """Status of an issue and what can be done with it next."""

    issue_id: int
    status: str
    description: str
    allowed_transitions: List[str]
    actions: Dict[str, bool]


class IssueOut(BaseModel):
    id: int
    topic_id: int
    title: str
    status: str
    error_message: Optional[str] = None
    approved_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    class Config:
        from_attributes = True
