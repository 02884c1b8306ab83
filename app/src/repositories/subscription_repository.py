from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.subscription import Subscription, SubscriptionStatus
from src.models.user import User
from src.repositories.base import BaseRepository

# Timestamp column stamped when a subscription enters each status
_STATUS_TIMESTAMPS = {
    SubscriptionStatus.ACTIVE: "activated_at",
    SubscriptionStatus.PAUSED: "paused_at",
    SubscriptionStatus.CANCELLED: "cancelled_at",
}


def subscription_snapshot(subscription: Subscription) -> Dict[str, Any]:
    """JSON-safe view of a subscription for audit old/new values."""

    def _iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    return {
        "id": subscription.id,
        "user_id": subscription.user_id,
        "subject_id": subscription.subject_id,
        "status": subscription.status,
        "activated_at": _iso(subscription.activated_at),
        "paused_at": _iso(subscription.paused_at),
        "cancelled_at": _iso(subscription.cancelled_at),
    }


class SubscriptionRepository(BaseRepository[Subscription]):
    """Repository for Subscription model operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Subscription)

    async def find_by_user_and_subject(self, user_id: str, subject_id: int) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).filter(
                Subscription.user_id == user_id,
                Subscription.subject_id == subject_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_for_user(
        self,
        user_id: str,
        subject_id: int,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    ) -> Subscription:
        now = datetime.now(timezone.utc)
        data: Dict[str, Any] = {
            "user_id": user_id,
            "subject_id": subject_id,
            "status": SubscriptionStatus(status).value,
        }
        data[_STATUS_TIMESTAMPS[SubscriptionStatus(status)]] = now
        return await self.create(data)

    async def bulk_create(self, user_ids: Sequence[str], subject_id: int) -> List[Subscription]:
        """Active subscriptions for each user id, one insert round trip."""
        now = datetime.now(timezone.utc)
        subscriptions = [
            Subscription(
                user_id=user_id,
                subject_id=subject_id,
                status=SubscriptionStatus.ACTIVE.value,
                activated_at=now,
            )
            for user_id in dict.fromkeys(user_ids)
        ]
        self.db.add_all(subscriptions)
        await self.db.flush()
        return subscriptions

    async def update_status(self, subscription_id: str, status: SubscriptionStatus) -> Optional[Subscription]:
        """Move a subscription to `status`, stamping the matching timestamp."""
        status = SubscriptionStatus(status)
        return await self.update(subscription_id, {
            "status": status.value,
            _STATUS_TIMESTAMPS[status]: datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc),
        })

    async def find_uncancelled_by_email(self, email: str) -> List[Subscription]:
        """Active or paused subscriptions, across all subjects, owned by an email address."""
        result = await self.db.execute(
            select(Subscription)
            .join(User, User.id == Subscription.user_id)
            .filter(
                User.email == email,
                Subscription.status != SubscriptionStatus.CANCELLED.value,
            )
        )
        return list(result.scalars().all())

    async def filter_active_subscriber_ids(self, user_ids: Sequence[str], subject_id: int) -> List[str]:
        """Subset of `user_ids` actively subscribed to the subject."""
        if not user_ids:
            return []
        result = await self.db.execute(
            select(Subscription.user_id).filter(
                and_(
                    Subscription.user_id.in_(list(user_ids)),
                    Subscription.subject_id == subject_id,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                )
            )
        )
        return list(result.scalars().all())

    async def count_active(self, subject_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Subscription.id)).filter(
                Subscription.subject_id == subject_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
        )
        return result.scalar() or 0
