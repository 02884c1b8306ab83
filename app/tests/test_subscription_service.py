import uuid

import pytest
from sqlalchemy import select

from src.core.cache import subscriber_count_key
from src.core.exceptions import NotFoundError, ValidationError
from src.models.subscription import Subscription, SubscriptionStatus
from src.models.subscription_audit import SubscriptionAudit
from src.services.subscription_service import SubscriptionService, validate_user_id


async def audit_rows(session, user_id):
    result = await session.execute(
        select(SubscriptionAudit)
        .filter(SubscriptionAudit.user_id == user_id)
        .order_by(SubscriptionAudit.created_at)
    )
    return list(result.scalars().all())


async def subscription_status(session, user_id, subject_id):
    result = await session.execute(
        select(Subscription.status).filter(
            Subscription.user_id == user_id, Subscription.subject_id == subject_id
        )
    )
    return result.scalar_one_or_none()


def test_validate_user_id():
    user_id = str(uuid.uuid4())
    assert validate_user_id(user_id) == user_id
    with pytest.raises(ValidationError):
        validate_user_id("not-a-uuid")


class TestUnsubscribe:
    """Cancelling a subscription."""

    @pytest.mark.asyncio
    async def test_cancels_and_audits(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        user = await factory.subscriber(subject)
        service = SubscriptionService(uow, cache=cache)

        subscription = await service.unsubscribe(user.id, subject.id)

        assert subscription.status == "cancelled"
        assert subscription.cancelled_at is not None
        [audit] = await audit_rows(async_session, user.id)
        assert audit.change_type == "UPDATE"
        assert audit.reason == "user_unsubscribe"
        assert audit.old_values["status"] == "active"
        assert audit.new_values["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_refreshes_cached_count(self, uow, factory, cache):
        subject = await factory.subject()
        user = await factory.subscriber(subject)
        await factory.subscriber(subject)
        cache.store[subscriber_count_key(subject.id)] = 2
        service = SubscriptionService(uow, cache=cache)

        await service.unsubscribe(user.id, subject.id)

        assert cache.store[subscriber_count_key(subject.id)] == 1

    @pytest.mark.asyncio
    async def test_is_idempotent(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        user = await factory.subscriber(subject)
        service = SubscriptionService(uow, cache=cache)

        await service.unsubscribe(user.id, subject.id)
        again = await service.unsubscribe(user.id, subject.id)

        assert again.status == "cancelled"
        assert len(await audit_rows(async_session, user.id)) == 1
        assert len(await uow.subscription_audits.get_for_subscription(again.id)) == 1

    @pytest.mark.asyncio
    async def test_missing_subscription_is_created_then_cancelled(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        user = await factory.user()
        service = SubscriptionService(uow, cache=cache)

        await service.unsubscribe(user.id, subject.id)

        assert await subscription_status(async_session, user.id, subject.id) == "cancelled"
        reasons = [(a.change_type, a.reason) for a in await audit_rows(async_session, user.id)]
        assert ("INSERT", "system_migration") in reasons
        assert ("UPDATE", "user_unsubscribe") in reasons

    @pytest.mark.asyncio
    async def test_unknown_user(self, uow, factory, cache):
        subject = await factory.subject()
        service = SubscriptionService(uow, cache=cache)

        with pytest.raises(NotFoundError):
            await service.unsubscribe(str(uuid.uuid4()), subject.id)

    @pytest.mark.asyncio
    async def test_malformed_user_id(self, uow, cache):
        service = SubscriptionService(uow, cache=cache)

        with pytest.raises(ValidationError):
            await service.unsubscribe("42", 1)


class TestEnsureSubscriptionExists:

    @pytest.mark.asyncio
    async def test_returns_existing(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        user = await factory.subscriber(subject)
        service = SubscriptionService(uow, cache=cache)

        subscription = await service.ensure_subscription_exists(user.id, subject.id)

        assert subscription.status == "active"
        assert await audit_rows(async_session, user.id) == []

    @pytest.mark.asyncio
    async def test_creates_active_subscription(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        user = await factory.user()
        service = SubscriptionService(uow, cache=cache)

        subscription = await service.ensure_subscription_exists(user.id, subject.id)

        assert subscription.status == "active"
        assert subscription.activated_at is not None
        [audit] = await audit_rows(async_session, user.id)
        assert audit.change_type == "INSERT"
        assert audit.reason == "system_migration"
        assert audit.old_values is None


class TestBulkCreateSubscription:

    @pytest.mark.asyncio
    async def test_empty_input(self, uow, cache):
        service = SubscriptionService(uow, cache=cache)
        assert await service.bulk_create_subscription([], 1) == []

    @pytest.mark.asyncio
    async def test_creates_missing_and_skips_existing(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        existing = await factory.subscriber(subject)
        new_users = [await factory.user() for _ in range(2)]
        cache.store[subscriber_count_key(subject.id)] = 1
        service = SubscriptionService(uow, cache=cache)

        created = await service.bulk_create_subscription(
            [existing.id] + [u.id for u in new_users], subject.id
        )

        assert sorted(s.user_id for s in created) == sorted(u.id for u in new_users)
        for user in new_users:
            [audit] = await audit_rows(async_session, user.id)
            assert audit.reason == "admin_action"
        assert await audit_rows(async_session, existing.id) == []
        assert subscriber_count_key(subject.id) not in cache.store

    @pytest.mark.asyncio
    async def test_rejects_malformed_ids(self, uow, cache):
        service = SubscriptionService(uow, cache=cache)

        with pytest.raises(ValidationError):
            await service.bulk_create_subscription(["bogus"], 1)


class TestCancelSubscriptionsByEmail:
    """Hard-bounce handling."""

    @pytest.mark.asyncio
    async def test_cancels_across_subjects(self, uow, async_session, factory, cache):
        first = await factory.subject("System Design")
        second = await factory.subject("Databases")
        user = await factory.subscriber(first, email="bounced@example.com")
        await uow.subscriptions.create_for_user(user.id, second.id, SubscriptionStatus.PAUSED)
        await uow.commit()
        cache.store[subscriber_count_key(first.id)] = 1
        cache.store[subscriber_count_key(second.id)] = 0
        service = SubscriptionService(uow, cache=cache)

        cancelled = await service.cancel_subscriptions_by_email("Bounced@Example.com ")

        assert len(cancelled) == 2
        assert await subscription_status(async_session, user.id, first.id) == "cancelled"
        assert await subscription_status(async_session, user.id, second.id) == "cancelled"
        assert {a.reason for a in await audit_rows(async_session, user.id)} == {"bounce_handling"}
        assert cache.store == {}

    @pytest.mark.asyncio
    async def test_already_cancelled_is_left_alone(self, uow, async_session, factory, cache):
        subject = await factory.subject()
        user = await factory.subscriber(subject, email="gone@example.com", status=SubscriptionStatus.CANCELLED)
        service = SubscriptionService(uow, cache=cache)

        assert await service.cancel_subscriptions_by_email("gone@example.com") == []
        assert await audit_rows(async_session, user.id) == []

    @pytest.mark.asyncio
    async def test_unknown_address(self, uow, cache):
        service = SubscriptionService(uow, cache=cache)
        assert await service.cancel_subscriptions_by_email("nobody@example.com") == []


class TestActiveSubscriberCount:

    @pytest.mark.asyncio
    async def test_counts_and_caches(self, uow, factory, cache):
        subject = await factory.subject()
        await factory.subscriber(subject)
        await factory.subscriber(subject)
        await factory.subscriber(subject, status=SubscriptionStatus.CANCELLED)
        service = SubscriptionService(uow, cache=cache)

        assert await service.get_active_subscriber_count(subject.id) == 2
        assert cache.store[subscriber_count_key(subject.id)] == 2
        assert cache.ttls[subscriber_count_key(subject.id)] == 300

    @pytest.mark.asyncio
    async def test_cached_value_wins(self, uow, factory, cache):
        subject = await factory.subject()
        await factory.subscriber(subject)
        cache.store[subscriber_count_key(subject.id)] = 41
        service = SubscriptionService(uow, cache=cache)

        assert await service.get_active_subscriber_count(subject.id) == 41

    @pytest.mark.asyncio
    async def test_garbage_in_cache_is_recomputed(self, uow, factory, cache):
        subject = await factory.subject()
        await factory.subscriber(subject)
        cache.store[subscriber_count_key(subject.id)] = "many"
        service = SubscriptionService(uow, cache=cache)

        assert await service.get_active_subscriber_count(subject.id) == 1
