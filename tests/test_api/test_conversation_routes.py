"""Tests for the inbox conversation/message endpoints."""

from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.main import app
from app.models import Platform
from app.services import message_store
from app.services.dispatch import DispatchService, get_dispatch
from app.services.platforms.whatsapp import WhatsAppAdapter
from app.utils.jwt import create_access_token


pytestmark = pytest.mark.asyncio

API = "/api/v1/messages"


class TestAuthentication:
    async def test_requires_token(self, client):
        response = await client.get(f"{API}/conversations")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_rejects_garbage_token(self, client):
        response = await client.get(f"{API}/conversations", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    async def test_rejects_expired_token(self, client, agent):
        token = create_access_token(agent.id, expires_in=timedelta(seconds=-1))

        response = await client.get(f"{API}/conversations", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_rejects_inactive_agent(self, client, db, agent, auth_headers):
        agent.is_active = False
        await db.flush()

        response = await client.get(f"{API}/conversations", headers=auth_headers)
        assert response.status_code == 401


class TestListing:
    async def test_list_includes_customer_and_last_message(self, client, auth_headers, db, conversation, agent):
        await message_store.record_agent_message(db, conversation, agent.id, "Latest reply")

        response = await client.get(f"{API}/conversations", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total": 1, "page": 1, "limit": 20, "pages": 1}
        item = body["conversations"][0]
        assert item["id"] == str(conversation.id)
        assert item["customer"]["first_name"] == "Maria"
        assert item["last_message"]["content"] == "Latest reply"
        assert item["metadata"] == {"phone_number": "5215512345678"}

    async def test_filters(self, client, auth_headers, conversation):
        response = await client.get(
            f"{API}/conversations", params={"platform": "telegram"}, headers=auth_headers
        )
        assert response.json()["pagination"]["total"] == 0

        response = await client.get(f"{API}/conversations", params={"status": "new"}, headers=auth_headers)
        assert response.json()["pagination"]["total"] == 1

        response = await client.get(f"{API}/conversations", params={"search": "garcia"}, headers=auth_headers)
        assert response.json()["pagination"]["total"] == 1

    async def test_invalid_status_filter(self, client, auth_headers):
        response = await client.get(f"{API}/conversations", params={"status": "archived"}, headers=auth_headers)
        assert response.status_code == 422

    async def test_stats(self, client, auth_headers, conversation):
        response = await client.get(f"{API}/stats", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["by_platform"] == [{"platform": "whatsapp", "status": "new", "count": 1}]


class TestDetail:
    async def test_conversation_with_messages(self, client, auth_headers, db, conversation, agent):
        await message_store.record_agent_message(db, conversation, agent.id, "First")

        response = await client.get(f"{API}/conversations/{conversation.id}", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["customer"]["phone"] == "5215512345678"
        assert [m["content"] for m in body["messages"]] == ["First"]

    async def test_missing_conversation(self, client, auth_headers):
        response = await client.get(f"{API}/conversations/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404

    async def test_message_pagination(self, client, auth_headers, db, conversation, agent):
        for text in ("one", "two", "three"):
            await message_store.record_agent_message(db, conversation, agent.id, text)

        response = await client.get(
            f"{API}/conversations/{conversation.id}/messages",
            params={"page": 2, "limit": 2},
            headers=auth_headers,
        )

        body = response.json()
        assert [m["content"] for m in body["messages"]] == ["three"]
        assert body["pagination"]["pages"] == 2


class TestSending:
    async def test_send_reply(self, client, auth_headers, hub, conversation):
        hub.notify_new_message = AsyncMock(return_value=1)

        response = await client.post(
            f"{API}/send",
            json={"conversation_id": str(conversation.id), "content": "Thanks for writing"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["delivery"] == {"status": "sent", "error": None}
        assert body["message"]["sender_type"] == "agent"
        assert body["message"]["platform_message_id"].startswith("mock_")
        hub.notify_new_message.assert_awaited_once()

    async def test_delivery_failure_is_reported_not_raised(self, client, auth_headers, settings, conversation):
        unconfigured = settings.model_copy(update={"whatsapp_token": ""})
        broken = DispatchService({Platform.WHATSAPP: WhatsAppAdapter(unconfigured, mock_mode=False)})
        app.dependency_overrides[get_dispatch] = lambda: broken

        response = await client.post(
            f"{API}/send",
            json={"conversation_id": str(conversation.id), "content": "Hello?"},
            headers=auth_headers,
        )
        await broken.close()

        assert response.status_code == 201
        body = response.json()
        assert body["delivery"]["status"] == "failed"
        assert body["message"]["metadata"]["delivery_status"] == "failed"

    async def test_empty_content(self, client, auth_headers, conversation):
        response = await client.post(
            f"{API}/send",
            json={"conversation_id": str(conversation.id), "content": ""},
            headers=auth_headers,
        )
        assert response.status_code == 422

    async def test_unknown_conversation(self, client, auth_headers):
        response = await client.post(
            f"{API}/send", json={"conversation_id": str(uuid4()), "content": "hi"}, headers=auth_headers
        )
        assert response.status_code == 404


class TestWorkflow:
    async def test_assign(self, client, auth_headers, hub, conversation, other_agent):
        hub.notify_conversation_assigned = AsyncMock(return_value=1)

        response = await client.put(
            f"{API}/conversations/{conversation.id}/assign",
            json={"assigned_to": str(other_agent.id)},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["assigned_to"] == str(other_agent.id)
        hub.notify_conversation_assigned.assert_awaited_once()

    async def test_assign_to_unknown_agent(self, client, auth_headers, conversation):
        response = await client.put(
            f"{API}/conversations/{conversation.id}/assign",
            json={"assigned_to": str(uuid4())},
            headers=auth_headers,
        )
        assert response.status_code == 404

    async def test_update_status_and_priority(self, client, auth_headers, conversation):
        response = await client.put(
            f"{API}/conversations/{conversation.id}/status",
            json={"status": "resolved", "priority": "high"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert (response.json()["status"], response.json()["priority"]) == ("resolved", "high")

    async def test_update_requires_a_field(self, client, auth_headers, conversation):
        response = await client.put(f"{API}/conversations/{conversation.id}/status", json={}, headers=auth_headers)
        assert response.status_code == 422

    async def test_mark_read(self, client, auth_headers, db, settings, whatsapp_payload):
        result = await WhatsAppAdapter(settings, mock_mode=True).process_webhook(db, whatsapp_payload())
        conversation = result.ingested[0].conversation

        response = await client.put(f"{API}/conversations/{conversation.id}/read", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["marked_read"] == 1
        assert response.json()["conversation"]["unread_count"] == 0

    async def test_templates_empty_in_mock_mode(self, client, auth_headers):
        response = await client.get(f"{API}/whatsapp/templates", headers=auth_headers)
        assert response.json() == {"templates": []}
