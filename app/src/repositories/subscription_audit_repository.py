from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.subscription import Subscription
from src.models.subscription_audit import AuditChangeType, SubscriptionAudit, SubscriptionAuditReason
from src.repositories.subscription_repository import subscription_snapshot


class SubscriptionAuditRepository:
    """Append-only writes to the subscription audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_insert(self, subscription: Subscription, reason: SubscriptionAuditReason) -> SubscriptionAudit:
        entry = SubscriptionAudit(
            subscription_id=subscription.id,
            user_id=subscription.user_id,
            change_type=AuditChangeType.INSERT.value,
            reason=SubscriptionAuditReason(reason).value,
            old_values=None,
            new_values=subscription_snapshot(subscription),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def log_update(
        self,
        subscription_id: str,
        user_id: str,
        old_values: Optional[Dict[str, Any]],
        new_values: Dict[str, Any],
        reason: SubscriptionAuditReason,
    ) -> SubscriptionAudit:
        entry = SubscriptionAudit(
            subscription_id=subscription_id,
            user_id=user_id,
            change_type=AuditChangeType.UPDATE.value,
            reason=SubscriptionAuditReason(reason).value,
            old_values=old_values,
            new_values=new_values,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def bulk_log_insert(
        self, subscriptions: Sequence[Subscription], reason: SubscriptionAuditReason
    ) -> List[SubscriptionAudit]:
        entries = [
            SubscriptionAudit(
                subscription_id=subscription.id,
                user_id=subscription.user_id,
                change_type=AuditChangeType.INSERT.value,
                reason=SubscriptionAuditReason(reason).value,
                old_values=None,
                new_values=subscription_snapshot(subscription),
            )
            for subscription in subscriptions
        ]
        if entries:
            self.db.add_all(entries)
            await self.db.flush()
        return entries

    async def get_for_subscription(self, subscription_id: str) -> List[SubscriptionAudit]:
        result = await self.db.execute(
            select(SubscriptionAudit)
            .filter(SubscriptionAudit.subscription_id == subscription_id)
            .order_by(SubscriptionAudit.created_at)
        )
        return list(result.scalars().all())
