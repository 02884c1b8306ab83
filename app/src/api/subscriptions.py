import logging

from fastapi import APIRouter, Depends, Query

from src.core.config import settings
from src.core.exceptions import ValidationError
from src.core.service_dependencies import get_subscription_service
from src.core.unsubscribe import validate_unsubscribe_token
from src.schemas.newsletter import BounceNotification, UnsubscribeRequest
from src.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/api", tags=["subscriptions"])
logger = logging.getLogger(__name__)

PERMANENT_BOUNCE = "permanent"


async def _unsubscribe_with_token(token: str, subscription_service: SubscriptionService) -> dict:
    claims = validate_unsubscribe_token(token)
    if claims is None:
        raise ValidationError("Invalid or expired unsubscribe token")

    subscription = await subscription_service.unsubscribe(claims["user_id"], settings.DEFAULT_SUBJECT_ID)
    return {
        "success": True,
        "status": subscription.status,
        "message": "You have been unsubscribed",
    }


@router.post("/subscriptions/unsubscribe", summary="Unsubscribe with a signed token")
async def unsubscribe(
    request: UnsubscribeRequest,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Called by the unsubscribe confirmation page linked from every issue."""
    return await _unsubscribe_with_token(request.token, subscription_service)


@router.post("/subscriptions/one-click-unsubscribe", summary="RFC 8058 one-click unsubscribe")
async def one_click_unsubscribe(
    token: str = Query(...),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Target of the List-Unsubscribe header; mail clients POST here directly."""
    return await _unsubscribe_with_token(token, subscription_service)


@router.post("/webhooks/bounces", summary="Ingest bounce notifications")
async def handle_bounces(
    notification: BounceNotification,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
):
    """Permanent bounces cancel every subscription of the bounced addresses."""
    if notification.bounce_type.lower() != PERMANENT_BOUNCE:
        logger.info(f"Ignoring {notification.bounce_type} bounce for {len(notification.emails)} addresses")
        return {"processed": 0, "cancelled_subscriptions": 0, "ignored": True}

    cancelled = 0
    for email in notification.emails:
        cancelled += len(await subscription_service.cancel_subscriptions_by_email(email))

    logger.info(f"Processed permanent bounce for {len(notification.emails)} addresses, cancelled {cancelled} subscriptions")
    return {"processed": len(notification.emails), "cancelled_subscriptions": cancelled, "ignored": False}
