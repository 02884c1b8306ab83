import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, case, func, literal, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import PersistenceFailure
from src.models.delivery import RETRYABLE_DELIVERY_STATUSES, Delivery, DeliveryStatus
from src.models.issue import Issue
from src.models.subscription import Subscription, SubscriptionStatus
from src.models.topic import Topic
from src.models.user import User
from src.repositories.base import BaseRepository
from src.schemas.delivery import DeliveryStatusUpdate, IssueDeliveryMetrics

logger = logging.getLogger(__name__)

SENT_STATUSES = (DeliveryStatus.SENT.value, DeliveryStatus.DELIVERED.value)
FAILED_STATUSES = (DeliveryStatus.FAILED.value, DeliveryStatus.BOUNCED.value)

# Columns bulk_update_statuses may touch besides `status`
_OPTIONAL_UPDATE_COLUMNS = ("external_id", "error_message", "sent_at", "delivered_at")


class DeliveryRepository(BaseRepository[Delivery]):
    """Ledger of per-(issue, user) delivery attempts."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Delivery)

    def _insert(self):
        if self.dialect_name == "postgresql":
            return postgresql.insert(Delivery)
        if self.dialect_name == "sqlite":
            return sqlite.insert(Delivery)
        raise PersistenceFailure(f"Unsupported database dialect: {self.dialect_name}")

    async def bulk_create_pending(self, user_ids: Iterable[str], issue_id: int) -> List[str]:
        """
        Insert a pending row for every user that has none for this issue.

        Existing rows are skipped by the database in the same statement, so
        concurrent callers with overlapping user sets never create duplicates.
        Returns the user ids that got a new row.
        """
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return []

        stmt = (
            self._insert()
            .values([
                {
                    "id": str(uuid.uuid4()),
                    "issue_id": issue_id,
                    "user_id": user_id,
                    "status": DeliveryStatus.PENDING.value,
                }
                for user_id in unique_ids
            ])
            .on_conflict_do_nothing(index_elements=["issue_id", "user_id"])
            .returning(Delivery.user_id)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to create pending deliveries for issue {issue_id}", e) from e

        created = list(result.scalars().all())
        logger.debug(f"Created {len(created)} pending deliveries for issue {issue_id} ({len(unique_ids)} requested)")
        return created

    async def bulk_update_statuses(self, issue_id: int, updates: Sequence[DeliveryStatusUpdate]) -> int:
        """
        Apply per-user outcomes in one UPDATE.

        Each column is a CASE over user_id; a field left as None on an update
        keeps the stored value for that row.
        """
        if not updates:
            return 0

        user_ids = [u.user_id for u in updates]
        values: Dict[str, Any] = {
            "status": case(
                {u.user_id: literal(DeliveryStatus(u.status).value, Delivery.status.type) for u in updates},
                value=Delivery.user_id,
                else_=Delivery.status,
            )
        }
        for column_name in _OPTIONAL_UPDATE_COLUMNS:
            column = getattr(Delivery, column_name)
            whens = {
                u.user_id: literal(getattr(u, column_name), column.type)
                for u in updates
                if getattr(u, column_name) is not None
            }
            if whens:
                values[column_name] = case(whens, value=Delivery.user_id, else_=column)

        stmt = (
            update(Delivery)
            .where(and_(Delivery.issue_id == issue_id, Delivery.user_id.in_(user_ids)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to update delivery statuses for issue {issue_id}", e) from e
        return result.rowcount

    async def find_by_issue_and_user(self, issue_id: int, user_id: str) -> Optional[Delivery]:
        result = await self.db.execute(
            select(Delivery).filter(Delivery.issue_id == issue_id, Delivery.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_settled_user_ids(self, issue_id: int, user_ids: Sequence[str]) -> List[str]:
        """Users in `user_ids` whose delivery for this issue has left pending."""
        if not user_ids:
            return []
        result = await self.db.execute(
            select(Delivery.user_id).filter(
                Delivery.issue_id == issue_id,
                Delivery.user_id.in_(list(user_ids)),
                Delivery.status != DeliveryStatus.PENDING.value,
            )
        )
        return list(result.scalars().all())

    async def find_active_subscribers_with_failed_deliveries(self, issue_id: int) -> List[User]:
        """
        Retry candidates for an issue.

        A user qualifies when their delivery is pending, failed or bounced and
        they still hold an active subscription to the issue's subject.
        """
        subject_id = (
            select(Topic.subject_id)
            .join(Issue, Issue.topic_id == Topic.id)
            .filter(Issue.id == issue_id)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(User)
            .join(Delivery, Delivery.user_id == User.id)
            .join(
                Subscription,
                and_(
                    Subscription.user_id == User.id,
                    Subscription.subject_id == subject_id,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                ),
            )
            .filter(
                Delivery.issue_id == issue_id,
                Delivery.status.in_(RETRYABLE_DELIVERY_STATUSES),
            )
            .order_by(User.created_at, User.id)
        )
        return list(result.scalars().unique().all())

    async def find_failed_user_ids(self, issue_id: int) -> List[str]:
        """User ids whose delivery for this issue failed or bounced."""
        result = await self.db.execute(
            select(Delivery.user_id)
            .filter(Delivery.issue_id == issue_id, Delivery.status.in_(FAILED_STATUSES))
            .order_by(Delivery.created_at)
        )
        return list(result.scalars().all())

    async def find_recent_issue_metrics(self, limit: int = 10) -> List[IssueDeliveryMetrics]:
        """Per-issue delivery counts, most recently sent issue first."""
        sent_count = func.sum(case((Delivery.status.in_(SENT_STATUSES), 1), else_=0))
        pending_count = func.sum(case((Delivery.status == DeliveryStatus.PENDING.value, 1), else_=0))
        failed_count = func.sum(case((Delivery.status.in_(FAILED_STATUSES), 1), else_=0))

        result = await self.db.execute(
            select(
                Issue.id,
                Issue.title,
                Issue.sent_at,
                func.count(Delivery.id).label("total"),
                sent_count.label("sent"),
                pending_count.label("pending"),
                failed_count.label("failed"),
            )
            .join(Delivery, Delivery.issue_id == Issue.id)
            .group_by(Issue.id, Issue.title, Issue.sent_at)
            .order_by(Issue.sent_at.desc().nulls_last(), Issue.id.desc())
            .limit(limit)
        )

        metrics = []
        for row in result.all():
            total = row.total or 0
            sent = row.sent or 0
            metrics.append(IssueDeliveryMetrics(
                issue_id=row.id,
                title=row.title,
                sent_at=row.sent_at,
                total=total,
                sent=sent,
                pending=row.pending or 0,
                failed=row.failed or 0,
                success_rate=(sent / total) if total else 0.0,
            ))
        return metrics
