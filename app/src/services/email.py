import asyncio
import logging
import os
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

import resend

from ..core.config import settings
from ..core.unsubscribe import generate_list_unsubscribe_headers, generate_unsubscribe_page_url
from ..models.delivery import DeliveryStatus
from ..models.user import User
from ..schemas.newsletter import EmailMessage, IssueContent, MessageTag, SendOutcome

logger = logging.getLogger(__name__)

# Only set API key if it exists and we're not in test mode
if settings.RESEND_API_KEY and not os.getenv("TESTING"):
    resend.api_key = settings.RESEND_API_KEY

UNSUBSCRIBE_PLACEHOLDER = "{{UNSUBSCRIBE_URL}}"

TAG_USER_ID = "user_id"
TAG_SUBJECT_ID = "subject_id"
TAG_ISSUE_NUMBER = "issue_number"


def generate_standard_tags(user_id: str, subject_id: int, issue_number: int) -> List[MessageTag]:
    return [
        MessageTag(name=TAG_USER_ID, value=str(user_id)),
        MessageTag(name=TAG_SUBJECT_ID, value=str(subject_id)),
        MessageTag(name=TAG_ISSUE_NUMBER, value=str(issue_number)),
    ]


def render_newsletter_message(user: User, issue: IssueContent, subject_id: int, sequence_number: int) -> EmailMessage:
    """Per-recipient copy of an issue with its unsubscribe link filled in."""
    unsubscribe_url = generate_unsubscribe_page_url(user.id, user.email)
    html = (issue.html_content or "").replace(UNSUBSCRIBE_PLACEHOLDER, unsubscribe_url)
    text = issue.text_content.replace(UNSUBSCRIBE_PLACEHOLDER, unsubscribe_url) if issue.text_content else None

    return EmailMessage(
        user_id=user.id,
        to=user.email,
        from_email=settings.NEWSLETTER_FROM_EMAIL,
        subject=issue.title,
        html=html,
        text=text,
        headers=generate_list_unsubscribe_headers(user.id, user.email),
        tags=generate_standard_tags(user.id, subject_id, sequence_number),
    )


class EmailTransport(ABC):
    """Sends a batch of messages and reports one outcome per message, in order."""

    @abstractmethod
    async def send_batch(self, messages: Sequence[EmailMessage]) -> List[SendOutcome]:
        raise NotImplementedError


class ResendTransport(EmailTransport):
    """Transport backed by the Resend batch API."""

    def _to_params(self, message: EmailMessage) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "from": message.from_email,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "headers": message.headers,
            "tags": [{"name": tag.name, "value": tag.value} for tag in message.tags],
        }
        if message.text:
            params["text"] = message.text
        return params

    async def send_batch(self, messages: Sequence[EmailMessage]) -> List[SendOutcome]:
        if not messages:
            return []

        params = [self._to_params(message) for message in messages]
        # The Resend SDK is blocking
        response = await asyncio.to_thread(resend.Batch.send, params)
        data = response.get("data") if isinstance(response, dict) else None
        data = data or []

        outcomes = []
        for index, message in enumerate(messages):
            entry = data[index] if index < len(data) else None
            message_id = entry.get("id") if isinstance(entry, dict) else None
            if message_id:
                outcomes.append(SendOutcome(
                    user_id=message.user_id,
                    status=DeliveryStatus.SENT,
                    message_id=message_id,
                ))
            else:
                outcomes.append(SendOutcome(
                    user_id=message.user_id,
                    status=DeliveryStatus.FAILED,
                    error="No message id returned by Resend",
                ))

        logger.info(f"Resend batch accepted {sum(1 for o in outcomes if o.message_id)}/{len(messages)} messages")
        return outcomes


class ConsoleTransport(EmailTransport):
    """Test-mode transport: logs each message and reports it as sent."""

    async def send_batch(self, messages: Sequence[EmailMessage]) -> List[SendOutcome]:
        for message in messages:
            logger.info(f"Test mode: Newsletter '{message.subject}' would be sent to {message.to}")
        if messages:
            print(f"NEWSLETTER BATCH - {len(messages)} messages")
        return [
            SendOutcome(
                user_id=message.user_id,
                status=DeliveryStatus.SENT,
                message_id=f"test-{uuid.uuid4()}",
            )
            for message in messages
        ]


def get_email_transport() -> EmailTransport:
    """Console transport in test mode or without an API key, Resend otherwise."""
    if os.getenv("TESTING") or not settings.RESEND_API_KEY:
        return ConsoleTransport()
    return ResendTransport()
