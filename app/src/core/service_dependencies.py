from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.cache import get_cache
from src.core.database import get_db
from src.repositories.unit_of_work import SqlAlchemyUnitOfWork
from src.services.email import get_email_transport
from src.services.issue_service import IssueService
from src.services.newsletter_send_result_service import NewsletterSendResultService
from src.services.newsletter_service import NewsletterService
from src.services.subscription_service import SubscriptionService


async def get_unit_of_work(db: AsyncSession = Depends(get_db)) -> SqlAlchemyUnitOfWork:
    """Dependency to provide a unit of work bound to the request session."""
    return SqlAlchemyUnitOfWork(db)


async def get_issue_service(uow: SqlAlchemyUnitOfWork = Depends(get_unit_of_work)) -> IssueService:
    """Dependency to provide IssueService."""
    return IssueService(uow, get_cache())


async def get_subscription_service(uow: SqlAlchemyUnitOfWork = Depends(get_unit_of_work)) -> SubscriptionService:
    """Dependency to provide SubscriptionService."""
    return SubscriptionService(uow, get_cache())


async def get_newsletter_service(uow: SqlAlchemyUnitOfWork = Depends(get_unit_of_work)) -> NewsletterService:
    """Dependency to provide NewsletterService."""
    return NewsletterService(uow, get_email_transport())


async def get_send_result_service(uow: SqlAlchemyUnitOfWork = Depends(get_unit_of_work)) -> NewsletterSendResultService:
    """Dependency to provide NewsletterSendResultService."""
    return NewsletterSendResultService(uow)
