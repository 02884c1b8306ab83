import os

# Set testing environment variable before the app and its settings load
os.environ["TESTING"] = "1"

import uuid
from typing import Any, Dict, List, Optional, Sequence

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.main import app
from src.models import Base
from src.core.cache import Cache
from src.core.database import get_db
from src.models.delivery import DeliveryStatus
from src.models.issue import Issue, IssueStatus
from src.models.subject import Subject
from src.models.subscription import Subscription, SubscriptionStatus
from src.models.topic import Topic
from src.models.user import User
from src.repositories.unit_of_work import SqlAlchemyUnitOfWork
from src.schemas.newsletter import EmailMessage, SendOutcome
from src.services.email import EmailTransport


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ISSUE_HTML = '<h1>Consistent Hashing</h1><p>Body</p><a href="{{UNSUBSCRIBE_URL}}">Unsubscribe</a>'
ISSUE_TEXT = "Consistent Hashing\n\nBody\n\nUnsubscribe: {{UNSUBSCRIBE_URL}}"


@pytest_asyncio.fixture
async def async_engine():
    """Create an async engine for testing."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    """Create an async session for testing."""
    async_session_maker = async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def uow(async_session):
    return SqlAlchemyUnitOfWork(async_session)


@pytest_asyncio.fixture
async def override_get_db(async_session):
    """Override the get_db dependency."""

    async def _override_get_db():
        try:
            yield async_session
            await async_session.commit()
        except Exception:
            await async_session.rollback()
            raise

    return _override_get_db


@pytest_asyncio.fixture
async def client(override_get_db):
    """Create test client with overridden database."""
    from httpx import ASGITransport

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


class FakeTransport(EmailTransport):
    """Records every batch; can fail whole batches, or fail or bounce individual recipients."""

    def __init__(
        self,
        fail_with: Optional[BaseException] = None,
        fail_user_ids: Sequence[str] = (),
        bounce_user_ids: Sequence[str] = (),
    ):
        self.calls: List[List[EmailMessage]] = []
        self.fail_with = fail_with
        self.fail_user_ids = set(fail_user_ids)
        self.bounce_user_ids = set(bounce_user_ids)

    @property
    def sent_messages(self) -> List[EmailMessage]:
        return [message for call in self.calls for message in call]

    async def send_batch(self, messages):
        self.calls.append(list(messages))
        if self.fail_with is not None:
            raise self.fail_with
        outcomes = []
        for message in messages:
            if message.user_id in self.fail_user_ids:
                outcomes.append(SendOutcome(
                    user_id=message.user_id,
                    status=DeliveryStatus.FAILED,
                    error="Mailbox unavailable",
                ))
            elif message.user_id in self.bounce_user_ids:
                outcomes.append(SendOutcome(
                    user_id=message.user_id,
                    status=DeliveryStatus.BOUNCED,
                    message_id=f"msg-{uuid.uuid4()}",
                    error="Recipient address rejected",
                ))
            else:
                outcomes.append(SendOutcome(
                    user_id=message.user_id,
                    status=DeliveryStatus.SENT,
                    message_id=f"msg-{uuid.uuid4()}",
                ))
        return outcomes


class InMemoryCache(Cache):
    """Cache double keeping values in a dict; TTLs are recorded, not enforced."""

    def __init__(self):
        super().__init__(None)
        self.store: Dict[str, Any] = {}
        self.ttls: Dict[str, int] = {}

    @property
    def enabled(self) -> bool:
        return True

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl_seconds, value):
        self.store[key] = value
        self.ttls[key] = ttl_seconds

    async def delete(self, key):
        self.store.pop(key, None)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def cache():
    return InMemoryCache()


class NewsletterFactory:
    """Builds subjects, topics, issues and subscribers in the test session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.flush()
        await self.session.refresh(obj)
        return obj

    async def subject(self, name: str = "System Design") -> Subject:
        return await self._save(Subject(name=name))

    async def topic(self, subject: Subject, sequence_order: int = 1, title: Optional[str] = None) -> Topic:
        return await self._save(Topic(
            subject_id=subject.id,
            sequence_order=sequence_order,
            title=title or f"Topic {sequence_order}",
            topic_data={},
        ))

    async def issue(
        self,
        topic: Topic,
        status: IssueStatus = IssueStatus.APPROVED,
        html_content: Optional[str] = ISSUE_HTML,
        with_content: bool = True,
    ) -> Issue:
        content = {"sections": [{"heading": topic.title, "body": "Body"}]} if with_content else None
        return await self._save(Issue(
            topic_id=topic.id,
            title=topic.title,
            content=content,
            html_content=html_content,
            text_content=ISSUE_TEXT,
            status=IssueStatus(status).value,
        ))

    async def user(self, email: Optional[str] = None) -> User:
        return await self._save(User(email=email or f"user-{uuid.uuid4().hex[:8]}@example.com"))

    async def subscriber(
        self,
        subject: Subject,
        email: Optional[str] = None,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    ) -> User:
        user = await self.user(email)
        await self._save(Subscription(
            user_id=user.id,
            subject_id=subject.id,
            status=SubscriptionStatus(status).value,
        ))
        return user

    async def sendable_issue(self, subject: Optional[Subject] = None, sequence_order: int = 1):
        """Subject, topic and approved issue at `sequence_order`."""
        subject = subject or await self.subject()
        topic = await self.topic(subject, sequence_order)
        issue = await self.issue(topic)
        return subject, topic, issue


@pytest_asyncio.fixture
async def factory(async_session):
    return NewsletterFactory(async_session)


@pytest.fixture
def make_transport():
    """FakeTransport constructor, for tests that need failing recipients."""
    return FakeTransport
