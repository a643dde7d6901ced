"""Tests for the Facebook Messenger and Instagram adapters."""

import httpx
import pytest

from app.models import MessageType, Platform
from app.services.platforms.facebook import FacebookAdapter
from app.services.platforms.instagram import InstagramAdapter
from app.services.platforms.meta import MessengerPlatformAdapter
from app.services.platforms.types import DeliveryReceipt, InboundEvent, OutgoingMessage


pytestmark = pytest.mark.asyncio


def _messaging(*events: dict) -> dict:
    return {"object": "page", "entry": [{"id": "PAGE", "time": 1700000000000, "messaging": list(events)}]}


def _message(sender: str = "PSID1", **message) -> dict:
    return {
        "sender": {"id": sender},
        "recipient": {"id": "PAGE"},
        "timestamp": 1700000000000,
        "message": {"mid": "m_1", **message},
    }


class TestAdapterContract:
    async def test_access_token_must_be_provided(self, settings):
        class TokenlessAdapter(MessengerPlatformAdapter):
            platform = Platform.FACEBOOK

        with pytest.raises(TypeError, match="access_token"):
            TokenlessAdapter(settings)


class TestDecoding:
    async def test_text_message(self, settings):
        adapter = FacebookAdapter(settings)
        event = adapter.parse_event(next(adapter.iter_events(_messaging(_message(text="Hello")))))

        assert isinstance(event, InboundEvent)
        assert event.platform == Platform.FACEBOOK
        assert event.platform_id == "PSID1"
        assert event.content.text == "Hello"
        assert event.platform_message_id == "m_1"
        assert event.customer.lookup == {"phone": "PSID1", "source": "facebook"}
        assert (event.customer.first_name, event.customer.last_name) == ("Facebook", "User")
        # Millisecond timestamps
        assert event.sent_at.timestamp() == 1700000000

    async def test_instagram_uses_its_own_identity(self, settings):
        adapter = InstagramAdapter(settings)
        event = adapter.parse_event(_message(sender="IGSID", text="hey"))

        assert event.platform == Platform.INSTAGRAM
        assert event.customer.lookup == {"phone": "IGSID", "source": "instagram"}
        assert event.customer.first_name == "Instagram"

    @pytest.mark.parametrize(
        "message,text,message_type",
        [
            ({"attachments": [{"type": "image"}]}, "[Image]", MessageType.IMAGE),
            ({"attachments": [{"type": "video"}]}, "[Video]", MessageType.VIDEO),
            ({"attachments": [{"type": "audio"}]}, "[Audio]", MessageType.AUDIO),
            ({"attachments": [{"type": "file"}]}, "[File]", MessageType.FILE),
            ({"attachments": [{"type": "fallback"}]}, "[Attachment]", MessageType.UNSUPPORTED),
            ({"quick_reply": {"payload": "YES"}}, "[Quick Reply: YES]", MessageType.TEXT),
            ({}, "[Unsupported message type]", MessageType.UNSUPPORTED),
        ],
    )
    async def test_placeholders(self, settings, message, text, message_type):
        content = FacebookAdapter(settings).classify(message)

        assert content.text == text
        assert content.message_type == message_type

    async def test_echo_read_and_postback_are_ignored(self, settings):
        adapter = FacebookAdapter(settings)
        payload = _messaging(
            _message(text="sent by page", is_echo=True),
            {"sender": {"id": "PSID1"}, "read": {"watermark": 1}},
            {"sender": {"id": "PSID1"}, "postback": {"title": "Start", "payload": "GET_STARTED"}},
        )

        assert [adapter.parse_event(raw) for raw in adapter.iter_events(payload)] == [None, None, None]

    async def test_delivery_becomes_receipt(self, settings):
        adapter = FacebookAdapter(settings)
        receipt = adapter.parse_event(
            {"sender": {"id": "PSID1"}, "delivery": {"mids": ["m_out"], "watermark": 1700000000000}}
        )

        assert isinstance(receipt, DeliveryReceipt)
        assert receipt.platform_message_ids == ["m_out"]
        assert receipt.status == "delivered"


class TestVerification:
    """hub.* subscription handshake."""

    async def test_matching_token_returns_challenge(self, settings):
        adapter = FacebookAdapter(settings)
        assert adapter.verify_subscription("subscribe", "verify-me", "CHALLENGE") == "CHALLENGE"

    async def test_wrong_token_or_mode(self, settings):
        adapter = InstagramAdapter(settings)
        assert adapter.verify_subscription("subscribe", "nope", "CHALLENGE") is None
        assert adapter.verify_subscription("unsubscribe", "verify-me", "CHALLENGE") is None
        assert adapter.verify_subscription("subscribe", None, "CHALLENGE") is None


class TestProfileEnrichment:
    async def test_profile_name_replaces_placeholder(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v18.0/PSID1"
            return httpx.Response(200, json={"first_name": "Carla", "last_name": "Ruiz", "profile_pic": "https://p"})

        adapter = FacebookAdapter(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        event = adapter.parse_event(_message(text="hi"))

        await adapter.enrich_customer(event)
        await adapter.close()

        assert (event.customer.first_name, event.customer.last_name) == ("Carla", "Ruiz")
        assert event.conversation_metadata["profile_pic"] == "https://p"

    async def test_profile_failure_keeps_placeholder(self, settings):
        adapter = FacebookAdapter(
            settings,
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500))),
        )
        event = adapter.parse_event(_message(text="hi"))

        await adapter.enrich_customer(event)
        await adapter.close()

        assert event.customer.first_name == "Facebook"


class TestSending:
    async def test_media_payload(self, settings):
        payload = InstagramAdapter(settings).build_payload(
            OutgoingMessage(to="IGSID", content="", type="media", options={"media_url": "https://x/v.mp4", "media_type": "video"})
        )
        assert payload["message"]["attachment"] == {"type": "video", "payload": {"url": "https://x/v.mp4"}}

    async def test_send_uses_page_token(self, settings):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"recipient_id": "PSID1", "message_id": "m_out"})

        adapter = FacebookAdapter(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        ack = await adapter.send_message(OutgoingMessage(to="PSID1", content="Thanks!"))
        await adapter.close()

        assert adapter.extract_message_id(ack) == "m_out"
        assert seen[0].url.path == "/v18.0/me/messages"
        assert seen[0].headers["Authorization"] == "Bearer fb-token"
