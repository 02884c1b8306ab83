from abc import ABC, abstractmethod
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from src.repositories.delivery_repository import DeliveryRepository
from src.repositories.issue_repository import IssueRepository
from src.repositories.newsletter_send_result_repository import NewsletterSendResultRepository
from src.repositories.newsletter_sequence_repository import NewsletterSequenceRepository
from src.repositories.subscription_audit_repository import SubscriptionAuditRepository
from src.repositories.subscription_repository import SubscriptionRepository
from src.repositories.topic_repository import TopicRepository
from src.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(ABC):
    """Abstract Unit of Work pattern for managing database transactions."""

    users: UserRepository
    topics: TopicRepository
    issues: IssueRepository
    deliveries: DeliveryRepository
    subscriptions: SubscriptionRepository
    subscription_audits: SubscriptionAuditRepository
    sequences: NewsletterSequenceRepository
    send_results: NewsletterSendResultRepository

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()

    @abstractmethod
    async def commit(self):
        raise NotImplementedError

    @abstractmethod
    async def rollback(self):
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """SQLAlchemy implementation of Unit of Work pattern."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(self.session)
        self.topics = TopicRepository(self.session)
        self.issues = IssueRepository(self.session)
        self.deliveries = DeliveryRepository(self.session)
        self.subscriptions = SubscriptionRepository(self.session)
        self.subscription_audits = SubscriptionAuditRepository(self.session)
        self.sequences = NewsletterSequenceRepository(self.session)
        self.send_results = NewsletterSendResultRepository(self.session)

    async def commit(self):
        """Commit the current transaction."""
        try:
            await self.session.commit()
            logger.debug("Transaction committed successfully")
        except Exception as e:
            logger.error(f"Error committing transaction: {e}")
            await self.rollback()
            raise

    async def rollback(self):
        """Rollback the current transaction."""
        try:
            await self.session.rollback()
            logger.debug("Transaction rolled back")
        except Exception as e:
            logger.error(f"Error rolling back transaction: {e}")
            raise

    async def flush(self):
        """Flush pending changes to the database without committing."""
        try:
            await self.session.flush()
            logger.debug("Session flushed successfully")
        except Exception as e:
            logger.error(f"Error flushing session: {e}")
            raise

    async def refresh(self, instance):
        """Refresh an instance from the database."""
        try:
            await self.session.refresh(instance)
        except Exception as e:
            logger.error(f"Error refreshing instance: {e}")
            raise
