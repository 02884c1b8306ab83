import logging
import uuid
from typing import List, Optional, Sequence

import logfire

from src.core.cache import Cache, get_cache, subscriber_count_key
from src.core.config import settings
from src.core.exceptions import NotFoundError, PersistenceFailure, ValidationError
from src.models.subscription import Subscription, SubscriptionStatus
from src.models.subscription_audit import SubscriptionAuditReason
from src.repositories.subscription_repository import subscription_snapshot
from src.repositories.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


def validate_user_id(user_id: str) -> str:
    try:
        return str(uuid.UUID(str(user_id)))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid user id: {user_id!r}")


class SubscriptionService:
    """
    Subscription lifecycle with its audit trail.

    Every mutation and the audit rows describing it are written in the same
    unit of work and committed once.
    """

    def __init__(self, uow: AbstractUnitOfWork, cache: Optional[Cache] = None):
        self.uow = uow
        self.cache = cache if cache is not None else get_cache()

    async def _get_or_create(self, user_id: str, subject_id: int) -> Subscription:
        subscription = await self.uow.subscriptions.find_by_user_and_subject(user_id, subject_id)
        if subscription:
            return subscription

        if await self.uow.users.get_by_id(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        subscription = await self.uow.subscriptions.create_for_user(user_id, subject_id)
        await self.uow.subscription_audits.log_insert(subscription, SubscriptionAuditReason.SYSTEM_MIGRATION)
        logger.info(f"User {user_id} subscribed to subject {subject_id}")
        return subscription

    async def ensure_subscription_exists(self, user_id: str, subject_id: int) -> Subscription:
        """Get-or-create; a created row is audited as system_migration."""
        user_id = validate_user_id(user_id)
        subscription = await self._get_or_create(user_id, subject_id)
        await self.uow.commit()
        return subscription

    async def _change_status(
        self,
        subscription: Subscription,
        status: SubscriptionStatus,
        reason: SubscriptionAuditReason,
    ) -> Subscription:
        old_values = subscription_snapshot(subscription)
        updated = await self.uow.subscriptions.update_status(subscription.id, status)
        if updated is None:
            raise PersistenceFailure(
                f"Failed to update subscription status from {old_values['status']} to "
                f"{SubscriptionStatus(status).value} for user {old_values['user_id']}"
            )
        await self.uow.subscription_audits.log_update(
            updated.id,
            updated.user_id,
            old_values,
            subscription_snapshot(updated),
            reason,
        )
        return updated

    async def unsubscribe(self, user_id: str, subject_id: int) -> Subscription:
        """
        Cancel a subscription.

        Already-cancelled subscriptions are returned untouched with no new
        audit row.
        """
        user_id = validate_user_id(user_id)
        with logfire.span("subscription.unsubscribe", user_id=user_id, subject_id=subject_id):
            subscription = await self._get_or_create(user_id, subject_id)
            if subscription.status == SubscriptionStatus.CANCELLED.value:
                await self.uow.commit()
                logger.info(f"User {user_id} already unsubscribed from subject {subject_id}")
                return subscription

            updated = await self._change_status(
                subscription, SubscriptionStatus.CANCELLED, SubscriptionAuditReason.USER_UNSUBSCRIBE
            )
            await self.uow.commit()
            logger.info(f"User {user_id} unsubscribed from subject {subject_id}")

        await self.refresh_active_subscriber_count(subject_id)
        return updated

    async def bulk_create_subscription(self, user_ids: Sequence[str], subject_id: int) -> List[Subscription]:
        """Active subscriptions for users with none yet; audited as admin_action."""
        if not user_ids:
            return []

        ids = [validate_user_id(user_id) for user_id in user_ids]
        new_ids = []
        for user_id in dict.fromkeys(ids):
            if await self.uow.subscriptions.find_by_user_and_subject(user_id, subject_id) is None:
                new_ids.append(user_id)

        subscriptions = await self.uow.subscriptions.bulk_create(new_ids, subject_id)
        await self.uow.subscription_audits.bulk_log_insert(subscriptions, SubscriptionAuditReason.ADMIN_ACTION)
        await self.uow.commit()
        logger.info(f"Created {len(subscriptions)} subscriptions for subject {subject_id}")

        if subscriptions:
            await self.cache.delete(subscriber_count_key(subject_id))
        return subscriptions

    async def cancel_subscriptions_by_email(self, email: str) -> List[Subscription]:
        """Cancel every subscription of a hard-bounced address that is not already cancelled."""
        subscriptions = await self.uow.subscriptions.find_uncancelled_by_email(email.strip().lower())
        if not subscriptions:
            logger.info(f"No subscriptions to cancel for bounced address {email}")
            return []

        cancelled = []
        for subscription in subscriptions:
            cancelled.append(await self._change_status(
                subscription, SubscriptionStatus.CANCELLED, SubscriptionAuditReason.BOUNCE_HANDLING
            ))
        subject_ids = {subscription.subject_id for subscription in cancelled}
        await self.uow.commit()
        logger.info(f"Cancelled {len(cancelled)} subscriptions for bounced address {email}")

        for subject_id in subject_ids:
            await self.cache.delete(subscriber_count_key(subject_id))
        return cancelled

    async def get_active_subscriber_count(self, subject_id: Optional[int] = None) -> int:
        """Read-through cached count of active subscriptions."""
        subject_id = subject_id or settings.DEFAULT_SUBJECT_ID
        cached = await self.cache.get(subscriber_count_key(subject_id))
        if isinstance(cached, int):
            return cached

        count = await self.uow.subscriptions.count_active(subject_id)
        await self.cache.setex(subscriber_count_key(subject_id), settings.SUBSCRIBER_COUNT_CACHE_TTL, count)
        return count

    async def refresh_active_subscriber_count(self, subject_id: int) -> int:
        """Drop the cached count and store a freshly computed one."""
        key = subscriber_count_key(subject_id)
        await self.cache.delete(key)
        count = await self.uow.subscriptions.count_active(subject_id)
        await self.cache.setex(key, settings.SUBSCRIBER_COUNT_CACHE_TTL, count)
        return count
