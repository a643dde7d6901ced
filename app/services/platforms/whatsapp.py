"""WhatsApp Cloud API adapter."""

import logging
from collections.abc import Iterator
from typing import Any

import httpx

from app.models.conversation import Platform
from app.services.platforms.base import PlatformAdapter, as_list, from_unix, split_name
from app.services.platforms.errors import (
    InvalidOutgoingMessageError,
    MalformedEventError,
    UnsupportedMessageTypeError,
)
from app.services.platforms.types import (
    ContentKind,
    CustomerIdentity,
    DecodedContent,
    DeliveryReceipt,
    InboundEvent,
    OutgoingMessage,
    ParsedEvent,
)

logger = logging.getLogger(__name__)


class WhatsAppAdapter(PlatformAdapter):
    """Adapter for the WhatsApp Cloud API (Meta Graph)."""

    platform = Platform.WHATSAPP

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.whatsapp_token and self.settings.whatsapp_phone_number_id)

    @property
    def graph_url(self) -> str:
        return f"{self.settings.meta_graph_base_url}/{self.settings.meta_api_version}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.whatsapp_token}",
            "Content-Type": "application/json",
        }

    # Decoding

    def iter_events(self, payload: dict) -> Iterator[dict]:
        """Yield one fragment per message or status in entry[].changes[].value."""
        for entry in as_list(payload.get("entry")):
            for change in as_list(entry.get("changes") if isinstance(entry, dict) else None):
                if not isinstance(change, dict) or change.get("field") != "messages":
                    continue
                value = change.get("value") or {}
                if not isinstance(value, dict):
                    yield {"invalid": value}
                    continue
                contacts = as_list(value.get("contacts"))
                for message in as_list(value.get("messages")):
                    yield {"message": message, "contacts": contacts}
                for status in as_list(value.get("statuses")):
                    yield {"status": status}

    def parse_event(self, raw: dict) -> ParsedEvent | None:
        if "invalid" in raw:
            raise MalformedEventError(f"WhatsApp change value is not an object: {type(raw['invalid']).__name__}")
        if "status" in raw:
            return self._parse_status(raw["status"])

        message = raw["message"]
        if not isinstance(message, dict) or not message.get("from"):
            raise MalformedEventError("WhatsApp message without sender")

        phone = str(message["from"])
        profile_name = self._profile_name(raw.get("contacts", []), phone)
        first_name, last_name = split_name(profile_name, "WhatsApp")

        return InboundEvent(
            platform=self.platform,
            platform_id=phone,
            content=self.classify(message),
            sent_at=from_unix(message.get("timestamp")),
            platform_message_id=message.get("id"),
            customer=CustomerIdentity(
                source=self.platform.value,
                lookup={"phone": phone},
                first_name=first_name,
                last_name=last_name,
                phone=phone,
            ),
            conversation_metadata={"phone_number": phone, "profile_name": profile_name},
            message_metadata={"timestamp": message.get("timestamp"), "raw": message},
        )

    def _parse_status(self, status: Any) -> DeliveryReceipt:
        if not isinstance(status, dict) or not status.get("id"):
            raise MalformedEventError("WhatsApp status without message id")
        return DeliveryReceipt(
            platform=self.platform,
            platform_message_ids=[status["id"]],
            status=status.get("status", "unknown"),
            at=from_unix(status.get("timestamp")),
        )

    @staticmethod
    def _profile_name(contacts: list, phone: str) -> str | None:
        for contact in contacts:
            if isinstance(contact, dict) and contact.get("wa_id") in (None, phone):
                return (contact.get("profile") or {}).get("name")
        return None

    def classify(self, message: dict) -> DecodedContent:
        if "text" in message:
            return DecodedContent(ContentKind.TEXT, (message["text"] or {}).get("body", ""))
        if "image" in message:
            caption = (message["image"] or {}).get("caption") or "No caption"
            return DecodedContent(ContentKind.IMAGE, f"[Image: {caption}]")
        if "audio" in message:
            return DecodedContent(ContentKind.AUDIO, "[Audio message]")
        if "video" in message:
            return DecodedContent(ContentKind.VIDEO, "[Video message]")
        if "document" in message:
            filename = (message["document"] or {}).get("filename") or "Unknown file"
            return DecodedContent(ContentKind.DOCUMENT, f"[Document: {filename}]")
        if "location" in message:
            location = message["location"] or {}
            return DecodedContent(
                ContentKind.LOCATION,
                f"[Location: {location.get('latitude')}, {location.get('longitude')}]",
            )
        if "contacts" in message:
            return DecodedContent(ContentKind.CONTACT, "[Contact information]")
        if "sticker" in message:
            return DecodedContent(ContentKind.STICKER, "[Sticker]")
        return DecodedContent.unsupported()

    # Encoding

    def build_payload(self, outgoing: OutgoingMessage) -> dict:
        base = {"messaging_product": "whatsapp", "to": outgoing.to}
        options = outgoing.options

        if outgoing.type == "text":
            return {**base, "type": "text", "text": {"body": outgoing.content}}

        if outgoing.type == "template":
            return {
                **base,
                "type": "template",
                "template": {
                    "name": options.get("template_name") or outgoing.content,
                    "language": {"code": options.get("language") or "en"},
                    "components": options.get("components") or [],
                },
            }

        if outgoing.type == "media":
            if not options.get("media_url"):
                raise InvalidOutgoingMessageError("WhatsApp media messages need a media_url")
            return {
                **base,
                "type": "image",
                "image": {
                    "link": options["media_url"],
                    "caption": options.get("caption") or outgoing.content,
                },
            }

        raise UnsupportedMessageTypeError(self.platform.value, outgoing.type)

    async def _deliver(self, outgoing: OutgoingMessage, payload: dict) -> dict:
        url = f"{self.graph_url}/{self.settings.whatsapp_phone_number_id}/messages"
        try:
            response = await self.client.post(url, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send WhatsApp message to {outgoing.to}: {e}")
            if isinstance(e, httpx.HTTPStatusError):
                logger.error(f"   Response: {e.response.text}")
            raise

        result = response.json()
        logger.info(f"Sent WhatsApp message to {outgoing.to} (id: {self.extract_message_id(result)})")
        return result

    def mock_ack(self, outgoing: OutgoingMessage, message_id: str) -> dict:
        return {
            "messaging_product": "whatsapp",
            "contacts": [{"input": outgoing.to, "wa_id": outgoing.to}],
            "messages": [{"id": message_id}],
        }

    def extract_message_id(self, ack: dict) -> str | None:
        messages = as_list(ack.get("messages"))
        if messages and isinstance(messages[0], dict):
            return messages[0].get("id")
        return None

    async def list_templates(self) -> list[dict]:
        """List approved message templates for the business account."""
        if self.mock_mode or not self.settings.whatsapp_business_account_id:
            return []
        url = f"{self.graph_url}/{self.settings.whatsapp_business_account_id}/message_templates"
        response = await self.client.get(url, headers=self._headers())
        response.raise_for_status()
        return response.json().get("data", [])
