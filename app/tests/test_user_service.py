import pytest
from sqlalchemy import select

from src.core.cache import subscriber_count_key
from src.core.config import settings
from src.core.exceptions import ValidationError
from src.models.subscription import Subscription
from src.models.subscription_audit import SubscriptionAudit
from src.services.user_service import UserService, normalize_email


def test_normalize_email():
    assert normalize_email("  Reader@Example.COM ") == "reader@example.com"
    with pytest.raises(ValidationError):
        normalize_email("not-an-email")


class TestCreateUser:

    @pytest.mark.asyncio
    async def test_creates_once_per_address(self, uow, cache):
        service = UserService(uow, cache=cache)

        first = await service.create_user("reader@example.com")
        second = await service.create_user("READER@example.com")

        assert first.id == second.id
        assert await uow.users.count() == 1

    @pytest.mark.asyncio
    async def test_signup_with_subject_subscribes(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        cache.store[subscriber_count_key(subject.id)] = 0
        service = UserService(uow, cache=cache)

        user = await service.create_user("reader@example.com", subject.id)

        subscription = await uow.subscriptions.find_by_user_and_subject(user.id, subject.id)
        assert subscription.status == "active"
        result = await async_session.execute(
            select(SubscriptionAudit.reason).filter(SubscriptionAudit.user_id == user.id)
        )
        assert result.scalars().all() == ["user_signup"]
        assert subscriber_count_key(subject.id) not in cache.store

    @pytest.mark.asyncio
    async def test_admin_is_created_lazily(self, uow, cache):
        service = UserService(uow, cache=cache)

        admin = await service.get_or_create_admin()
        again = await service.get_or_create_admin()

        assert admin.email == settings.ADMIN_EMAIL
        assert admin.id == again.id

    @pytest.mark.asyncio
    async def test_admin_has_no_subscription(self, uow, async_session, cache):
        admin = await UserService(uow, cache=cache).get_or_create_admin()

        result = await async_session.execute(
            select(Subscription.id).filter(Subscription.user_id == admin.id)
        )
        assert result.scalars().all() == []


class TestBulkCreateUsers:

    @pytest.mark.asyncio
    async def test_skips_existing_and_duplicates(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        await factory.user("existing@example.com")
        service = UserService(uow, cache=cache)

        users = await service.bulk_create_users(
            ["existing@example.com", "new@example.com", "New@example.com", "other@example.com"],
            subject_id=subject.id,
        )

        assert sorted(u.email for u in users) == ["new@example.com", "other@example.com"]
        result = await async_session.execute(
            select(Subscription.user_id).filter(Subscription.subject_id == subject.id)
        )
        assert sorted(result.scalars().all()) == sorted(u.id for u in users)

    @pytest.mark.asyncio
    async def test_empty_input(self, uow, cache):
        service = UserService(uow, cache=cache)
        assert await service.bulk_create_users([]) == []
