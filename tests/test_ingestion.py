"""Tests for webhook ingestion: resolution, message storage and aggregates."""

from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from app.models import (
    Conversation,
    ConversationStatus,
    Customer,
    ImmutableMessageError,
    Message,
    MessageSenderType,
)
from app.services import conversation as conversation_service
from app.services import message_store
from app.services.platforms.telegram import TelegramAdapter
from app.services.platforms.whatsapp import WhatsAppAdapter


pytestmark = pytest.mark.asyncio


async def _count(db, model) -> int:
    return await db.scalar(select(func.count()).select_from(model))


class TestFirstContact:
    """A new sender gets a customer, a conversation and a message."""

    async def test_whatsapp_text_creates_conversation(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)

        result = await adapter.process_webhook(db, whatsapp_payload(text="Hi"))
        await db.commit()

        assert (result.processed, result.failed, result.ignored) == (1, 0, 0)
        conversation = result.ingested[0].conversation
        message = result.ingested[0].message

        assert conversation.platform == "whatsapp"
        assert conversation.platform_id == "5215512345678"
        assert conversation.status == ConversationStatus.IN_PROGRESS.value
        assert conversation.unread_count == 1
        assert conversation.last_message_from == "customer"
        assert conversation.last_message_at is not None

        assert message.content == "Hi"
        assert message.sender_type == MessageSenderType.CUSTOMER.value
        assert message.is_read is False
        assert message.meta["content_kind"] == "text"

        customer = await db.get(Customer, conversation.customer_id)
        assert customer.phone == "5215512345678"
        assert customer.source == "whatsapp"
        assert customer.full_name == "Maria Garcia"

    async def test_existing_customer_is_linked_not_duplicated(self, db, settings, customer, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)

        result = await adapter.process_webhook(db, whatsapp_payload(phone=customer.phone))

        assert result.ingested[0].conversation.customer_id == customer.id
        assert await _count(db, Customer) == 1


class TestRepeatDelivery:
    async def test_duplicate_delivery_reuses_conversation(self, db, settings, whatsapp_payload):
        """Redelivered webhooks are stored again; the thread stays single."""
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        payload = whatsapp_payload(text="Hi", message_id="wamid.SAME")

        await adapter.process_webhook(db, payload)
        result = await adapter.process_webhook(db, payload)
        await db.commit()

        conversation = result.ingested[0].conversation
        assert await _count(db, Conversation) == 1
        assert await _count(db, Customer) == 1
        assert await _count(db, Message) == 2
        assert conversation.unread_count == 2

    async def test_resolved_conversation_stays_resolved(self, db, settings, conversation, whatsapp_payload):
        """New messages only move NEW conversations forward."""
        conversation.status = ConversationStatus.RESOLVED.value
        await db.flush()

        adapter = WhatsAppAdapter(settings, mock_mode=True)
        result = await adapter.process_webhook(db, whatsapp_payload(phone=conversation.platform_id))

        assert result.ingested[0].conversation.id == conversation.id
        assert result.ingested[0].conversation.status == ConversationStatus.RESOLVED.value
        assert result.ingested[0].conversation.unread_count == 1

    async def test_lost_creation_race_reuses_winner(self, db, settings, conversation, whatsapp_payload):
        """A writer whose lookup missed but whose insert conflicts adopts the existing row."""
        real_find = conversation_service.find_conversation
        calls = []

        async def stale_first_lookup(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return None
            return await real_find(*args, **kwargs)

        adapter = WhatsAppAdapter(settings, mock_mode=True)
        with patch("app.services.conversation.find_conversation", side_effect=stale_first_lookup):
            result = await adapter.process_webhook(db, whatsapp_payload(phone=conversation.platform_id))

        assert result.processed == 1
        assert result.ingested[0].conversation.id == conversation.id
        assert await _count(db, Conversation) == 1
        assert await _count(db, Customer) == 1


class TestPartialFailure:
    async def test_bad_event_does_not_block_others(self, db, settings, whatsapp_payload):
        """One malformed message in a batch is counted as failed; the rest are stored."""
        payload = whatsapp_payload(text="good")
        messages = payload["entry"][0]["changes"][0]["value"]["messages"]
        messages.insert(0, {"id": "wamid.nofrom", "text": {"body": "no sender"}})
        messages.append({"from": "5215599999999", "id": "wamid.other", "text": {"body": "also good"}})

        adapter = WhatsAppAdapter(settings, mock_mode=True)
        result = await adapter.process_webhook(db, payload)
        await db.commit()

        assert (result.processed, result.failed) == (2, 1)
        assert await _count(db, Conversation) == 2
        contents = set((await db.execute(select(Message.content))).scalars().all())
        assert contents == {"good", "also good"}

    async def test_non_object_change_value_is_counted_failed(self, db, settings, whatsapp_payload):
        payload = whatsapp_payload(text="good")
        payload["entry"][0]["changes"].insert(0, {"field": "messages", "value": "garbage"})

        adapter = WhatsAppAdapter(settings, mock_mode=True)
        result = await adapter.process_webhook(db, payload)

        assert (result.processed, result.failed) == (1, 1)
        assert result.ingested[0].message.content == "good"

    async def test_body_split_error_keeps_earlier_events(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        good = next(adapter.iter_events(whatsapp_payload(text="before")))

        def broken_split(payload):
            yield good
            raise AttributeError("'str' object has no attribute 'get'")

        with patch.object(adapter, "iter_events", side_effect=broken_split):
            result = await adapter.process_webhook(db, {})

        assert (result.processed, result.failed) == (1, 1)
        assert result.ingested[0].message.content == "before"

    async def test_ignored_events_are_counted(self, db, settings):
        adapter = TelegramAdapter(settings, mock_mode=True)
        result = await adapter.process_webhook(db, {"update_id": 1, "callback_query": {"data": "x"}})

        assert (result.processed, result.failed, result.ignored) == (0, 0, 1)


class TestDeliveryReceipts:
    async def test_status_updates_outbound_message(self, db, settings, conversation, agent):
        message = await message_store.record_agent_message(db, conversation, agent.id, "Hello")
        await message_store.attach_delivery_ack(db, message, "wamid.out1", {"messages": [{"id": "wamid.out1"}]})

        adapter = WhatsAppAdapter(settings, mock_mode=True)
        payload = {
            "entry": [
                {
                    "changes": [
                        {
                            "field": "messages",
                            "value": {"statuses": [{"id": "wamid.out1", "status": "delivered", "timestamp": "1700000100"}]},
                        }
                    ]
                }
            ]
        }
        result = await adapter.process_webhook(db, payload)
        await db.refresh(message)

        assert result.processed == 1
        assert result.ingested == []
        assert message.meta["delivery_status"] == "delivered"


class TestReadState:
    async def test_mark_conversation_read(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        await adapter.process_webhook(db, whatsapp_payload(message_id="a"))
        result = await adapter.process_webhook(db, whatsapp_payload(message_id="b"))
        conversation = result.ingested[0].conversation

        marked = await message_store.mark_conversation_read(db, conversation)

        assert marked == 2
        assert conversation.unread_count == 0
        unread = await db.scalar(select(func.count()).select_from(Message).where(Message.is_read.is_(False)))
        assert unread == 0

        result = await adapter.process_webhook(db, whatsapp_payload(message_id="c"))
        assert result.ingested[0].conversation.unread_count == 1

    async def test_mark_single_message_read_decrements(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        result = await adapter.process_webhook(db, whatsapp_payload())
        ingested = result.ingested[0]

        message = await message_store.mark_message_read(db, ingested.message.id)
        await db.refresh(ingested.conversation)

        assert message.is_read is True
        assert message.read_at is not None
        assert ingested.conversation.unread_count == 0

    async def test_agent_messages_do_not_count_as_unread(self, db, conversation, agent):
        message = await message_store.record_agent_message(db, conversation, agent.id, "On it")

        assert message.is_read is True
        assert conversation.unread_count == 0
        assert conversation.last_message_from == "agent"
        assert conversation.status == ConversationStatus.IN_PROGRESS.value


class TestImmutability:
    async def test_message_content_cannot_change(self, db, conversation, agent):
        message = await message_store.record_agent_message(db, conversation, agent.id, "Original")

        message.content = "Edited"
        with pytest.raises(ImmutableMessageError):
            await db.flush()

    async def test_read_flags_can_change(self, db, conversation, agent):
        message = await message_store.record_agent_message(db, conversation, agent.id, "Original")
        message.meta = {**message.meta, "delivery_status": "sent"}

        await db.flush()
        assert message.meta["delivery_status"] == "sent"


class TestInboxQueries:
    async def test_search_matches_customer_name(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        await adapter.process_webhook(db, whatsapp_payload(phone="1", name="Maria Garcia", message_id="m1"))
        await adapter.process_webhook(db, whatsapp_payload(phone="2", name="Pedro Ruiz", message_id="m2"))

        conversations, total = await conversation_service.list_conversations(db, search="pedro")

        assert total == 1
        assert conversations[0].platform_id == "2"

    async def test_stats_group_by_platform_and_status(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        await adapter.process_webhook(db, whatsapp_payload(phone="1", message_id="m1"))
        await adapter.process_webhook(db, whatsapp_payload(phone="2", message_id="m2"))

        stats = await conversation_service.conversation_stats(db)

        assert stats["by_platform"] == [{"platform": "whatsapp", "status": "in_progress", "count": 2}]
        assert stats["total_unread"] == 2
        assert stats["total_conversations"] == 2

    async def test_latest_message_per_conversation(self, db, settings, whatsapp_payload):
        adapter = WhatsAppAdapter(settings, mock_mode=True)
        await adapter.process_webhook(db, whatsapp_payload(text="first", message_id="m1"))
        result = await adapter.process_webhook(db, whatsapp_payload(text="second", message_id="m2"))
        conversation = result.ingested[0].conversation

        latest = await conversation_service.latest_messages(db, [conversation.id])

        assert latest[conversation.id].content == "second"
