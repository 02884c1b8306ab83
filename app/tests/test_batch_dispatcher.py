import asyncio

import pytest
from sqlalchemy import select

from src.models.delivery import Delivery, DeliveryStatus
from src.schemas.newsletter import SendOutcome
from src.services.batch_dispatcher import BatchDispatcher, chunked
from src.services.email import EmailTransport


class SlowTransport(EmailTransport):
    async def send_batch(self, messages):
        await asyncio.sleep(1)
        return []


class DroppingTransport(EmailTransport):
    """Reports an outcome for every message except the last."""

    async def send_batch(self, messages):
        return [
            SendOutcome(user_id=message.user_id, status=DeliveryStatus.SENT, message_id=f"msg-{index}")
            for index, message in enumerate(messages[:-1])
        ]


async def statuses(session, issue_id):
    result = await session.execute(
        select(Delivery.user_id, Delivery.status, Delivery.error_message, Delivery.external_id)
        .filter(Delivery.issue_id == issue_id)
    )
    return {row.user_id: row for row in result.all()}


def test_chunked_splits_into_fixed_size_pieces():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []


class TestProcessBatch:
    """Sending one page of recipients."""

    @pytest.mark.asyncio
    async def test_empty_recipients_never_call_transport(self, uow, factory, transport):
        subject, _, issue = await factory.sendable_issue()
        dispatcher = BatchDispatcher(uow, transport)

        result = await dispatcher.process_batch([], issue, subject.id, 1)

        assert result.total_sent == 0
        assert result.total_failed == 0
        assert result.failed_user_ids == []
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_successful_batch_marks_rows_sent(self, uow, async_session, factory, transport):
        subject, _, issue = await factory.sendable_issue()
        users = [await factory.subscriber(subject) for _ in range(3)]
        dispatcher = BatchDispatcher(uow, transport)

        result = await dispatcher.process_batch(users, issue, subject.id, 1)

        assert result.total_sent == 3
        assert result.total_failed == 0
        rows = await statuses(async_session, issue.id)
        assert {row.status for row in rows.values()} == {"sent"}
        assert all(row.external_id.startswith("msg-") for row in rows.values())

    @pytest.mark.asyncio
    async def test_messages_are_personalised(self, uow, factory, transport):
        subject, _, issue = await factory.sendable_issue(sequence_order=7)
        user = await factory.subscriber(subject, email="reader@example.com")
        dispatcher = BatchDispatcher(uow, transport)

        await dispatcher.process_batch([user], issue, subject.id, 7)

        [message] = transport.sent_messages
        assert message.to == "reader@example.com"
        assert message.subject == issue.title
        assert "{{UNSUBSCRIBE_URL}}" not in message.html
        assert "/unsubscribe?token=" in message.html
        assert "List-Unsubscribe" in message.headers
        tags = {tag.name: tag.value for tag in message.tags}
        assert tags == {"user_id": user.id, "subject_id": str(subject.id), "issue_number": "7"}

    @pytest.mark.asyncio
    async def test_recipients_are_split_into_transport_batches(self, uow, factory, transport):
        subject, _, issue = await factory.sendable_issue()
        users = [await factory.subscriber(subject) for _ in range(5)]
        dispatcher = BatchDispatcher(uow, transport, batch_size=2)

        result = await dispatcher.process_batch(users, issue, subject.id, 1)

        assert [len(call) for call in transport.calls] == [2, 2, 1]
        assert result.total_sent == 5

    @pytest.mark.asyncio
    async def test_individual_failures_are_recorded(self, uow, async_session, factory, make_transport):
        subject, _, issue = await factory.sendable_issue()
        ok = await factory.subscriber(subject)
        bad = await factory.subscriber(subject)
        transport = make_transport(fail_user_ids=[bad.id])
        dispatcher = BatchDispatcher(uow, transport)

        result = await dispatcher.process_batch([ok, bad], issue, subject.id, 1)

        assert result.total_sent == 1
        assert result.total_failed == 1
        assert result.failed_user_ids == [bad.id]
        rows = await statuses(async_session, issue.id)
        assert rows[ok.id].status == "sent"
        assert rows[bad.id].status == "failed"
        assert rows[bad.id].error_message == "Mailbox unavailable"

    @pytest.mark.asyncio
    async def test_transport_error_fails_whole_chunk(self, uow, async_session, factory, make_transport):
        subject, _, issue = await factory.sendable_issue()
        users = [await factory.subscriber(subject) for _ in range(2)]
        transport = make_transport(fail_with=RuntimeError("Resend unavailable"))
        dispatcher = BatchDispatcher(uow, transport)

        result = await dispatcher.process_batch(users, issue, subject.id, 1)

        assert result.total_sent == 0
        assert result.total_failed == 2
        assert sorted(result.failed_user_ids) == sorted(u.id for u in users)
        rows = await statuses(async_session, issue.id)
        assert {row.status for row in rows.values()} == {"failed"}
        assert {row.error_message for row in rows.values()} == {"Resend unavailable"}

    @pytest.mark.asyncio
    async def test_timeout_fails_whole_chunk(self, uow, async_session, factory):
        subject, _, issue = await factory.sendable_issue()
        user = await factory.subscriber(subject)
        dispatcher = BatchDispatcher(uow, SlowTransport(), batch_timeout=0.01)

        result = await dispatcher.process_batch([user], issue, subject.id, 1)

        assert result.total_failed == 1
        rows = await statuses(async_session, issue.id)
        assert rows[user.id].status == "failed"
        assert "timed out" in rows[user.id].error_message

    @pytest.mark.asyncio
    async def test_missing_outcome_counts_as_failure(self, uow, async_session, factory):
        subject, _, issue = await factory.sendable_issue()
        first = await factory.subscriber(subject)
        last = await factory.subscriber(subject)
        dispatcher = BatchDispatcher(uow, DroppingTransport())

        result = await dispatcher.process_batch([first, last], issue, subject.id, 1)

        assert result.total_sent == 1
        assert result.failed_user_ids == [last.id]
        rows = await statuses(async_session, issue.id)
        assert rows[last.id].error_message == "No outcome reported by transport"

    @pytest.mark.asyncio
    async def test_sent_rows_are_not_duplicated_on_repeat(self, uow, async_session, factory, transport):
        subject, _, issue = await factory.sendable_issue()
        user = await factory.subscriber(subject)
        dispatcher = BatchDispatcher(uow, transport)

        await dispatcher.process_batch([user], issue, subject.id, 1)
        await dispatcher.process_batch([user], issue, subject.id, 1)

        rows = await statuses(async_session, issue.id)
        assert len(rows) == 1
