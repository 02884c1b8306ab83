import logging
from typing import List, Optional, Sequence

from src.core.cache import Cache, get_cache, subscriber_count_key
from src.core.config import settings
from src.core.exceptions import ValidationError
from src.models.subscription_audit import SubscriptionAuditReason
from src.models.user import User
from src.repositories.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError(f"Invalid email address: {email!r}")
    return email


class UserService:
    """Service for user-related business logic."""

    def __init__(self, uow: AbstractUnitOfWork, cache: Optional[Cache] = None):
        self.uow = uow
        self.cache = cache if cache is not None else get_cache()

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self.uow.users.get_by_email(normalize_email(email))

    async def create_user(self, email: str, subject_id: Optional[int] = None) -> User:
        """
        Create a user, or return the existing one for this email.

        With `subject_id`, the user also gets an active subscription (audited
        as user_signup) in the same commit.
        """
        email = normalize_email(email)
        user = await self.uow.users.get_by_email(email)
        created = user is None
        if created:
            user = await self.uow.users.create_user(email)

        subscribed = False
        if subject_id is not None:
            subscription = await self.uow.subscriptions.find_by_user_and_subject(user.id, subject_id)
            if subscription is None:
                subscription = await self.uow.subscriptions.create_for_user(user.id, subject_id)
                await self.uow.subscription_audits.log_insert(subscription, SubscriptionAuditReason.USER_SIGNUP)
                subscribed = True

        await self.uow.commit()
        if created:
            logger.info(f"User created: {email}")
        if subscribed:
            await self.cache.delete(subscriber_count_key(subject_id))
        return user

    async def get_or_create_admin(self) -> User:
        """The fixed preview recipient, created on first use without a subscription."""
        return await self.create_user(settings.ADMIN_EMAIL)

    async def bulk_create_users(self, emails: Sequence[str], subject_id: Optional[int] = None) -> List[User]:
        """
        Create users for every address not already registered.

        With `subject_id`, the new users are subscribed and the subscriptions
        audited as admin_action.
        """
        normalized = list(dict.fromkeys(normalize_email(email) for email in emails))
        if not normalized:
            return []

        existing = {user.email for user in await self.uow.users.get_by_emails(normalized)}
        users = await self.uow.users.bulk_create([email for email in normalized if email not in existing])

        if subject_id is not None and users:
            subscriptions = await self.uow.subscriptions.bulk_create([user.id for user in users], subject_id)
            await self.uow.subscription_audits.bulk_log_insert(subscriptions, SubscriptionAuditReason.ADMIN_ACTION)

        await self.uow.commit()
        logger.info(f"Created {len(users)} users ({len(existing)} already existed)")

        if subject_id is not None and users:
            await self.cache.delete(subscriber_count_key(subject_id))
        return users
