"""Shared adapter for Meta's Messenger-style APIs (Facebook Messenger, Instagram)."""

import logging
from abc import abstractmethod
from collections.abc import Iterator

import httpx

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

ATTACHMENT_KINDS: dict[str, tuple[ContentKind, str]] = {
    "image": (ContentKind.IMAGE, "[Image]"),
    "video": (ContentKind.VIDEO, "[Video]"),
    "audio": (ContentKind.AUDIO, "[Audio]"),
    "file": (ContentKind.DOCUMENT, "[File]"),
    "location": (ContentKind.LOCATION, "[Location]"),
}


class MessengerPlatformAdapter(PlatformAdapter):
    """Webhooks arrive as entry[].messaging[]; replies go to /me/messages.

    Subclasses set the platform, the access token and the name used for
    customers whose profile cannot be fetched.
    """

    supports_verification = True
    default_first_name: str = "Messenger"
    profile_fields: str = "first_name,last_name"

    @property
    @abstractmethod
    def access_token(self) -> str:
        """Page or account token used for Graph API sends."""

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token)

    @property
    def graph_url(self) -> str:
        return f"{self.settings.meta_graph_base_url}/{self.settings.meta_api_version}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    # Decoding

    def iter_events(self, payload: dict) -> Iterator[dict]:
        for entry in as_list(payload.get("entry")):
            if isinstance(entry, dict):
                yield from as_list(entry.get("messaging"))

    def parse_event(self, event: dict) -> ParsedEvent | None:
        sender_id = (event.get("sender") or {}).get("id")

        if "message" in event:
            message = event["message"] or {}
            if message.get("is_echo"):
                # Copies of our own outbound sends
                return None
            if not sender_id:
                raise MalformedEventError(f"{self.platform.value} message without sender id")
            return self._inbound(event, message, str(sender_id))

        if "delivery" in event:
            delivery = event["delivery"] or {}
            mids = [mid for mid in as_list(delivery.get("mids")) if mid]
            if not mids:
                return None
            return DeliveryReceipt(
                platform=self.platform,
                platform_message_ids=mids,
                status="delivered",
                at=from_unix(delivery.get("watermark"), millis=True),
            )

        if "read" in event:
            logger.info(f"{self.platform.value} read receipt from {sender_id}")
            return None

        if "postback" in event:
            postback = event["postback"] or {}
            logger.info(
                f"{self.platform.value} postback from {sender_id}: "
                f"{postback.get('title')} ({postback.get('payload')})"
            )
            return None

        logger.debug(f"Ignoring {self.platform.value} event with keys {sorted(event)}")
        return None

    def _inbound(self, event: dict, message: dict, sender_id: str) -> InboundEvent:
        return InboundEvent(
            platform=self.platform,
            platform_id=sender_id,
            content=self.classify(message),
            sent_at=from_unix(event.get("timestamp"), millis=True),
            platform_message_id=message.get("mid"),
            customer=CustomerIdentity(
                source=self.platform.value,
                lookup={"phone": sender_id, "source": self.platform.value},
                first_name=self.default_first_name,
                last_name="User",
                phone=sender_id,
            ),
            conversation_metadata={
                "sender_id": sender_id,
                "page_id": (event.get("recipient") or {}).get("id"),
            },
            message_metadata={"timestamp": event.get("timestamp"), "raw": message},
        )

    def classify(self, message: dict) -> DecodedContent:
        if message.get("text"):
            return DecodedContent(ContentKind.TEXT, message["text"])

        attachments = as_list(message.get("attachments"))
        if attachments:
            attachment_type = (attachments[0] or {}).get("type")
            kind, text = ATTACHMENT_KINDS.get(attachment_type, (ContentKind.ATTACHMENT, "[Attachment]"))
            return DecodedContent(kind, text)

        if message.get("quick_reply"):
            return DecodedContent(
                ContentKind.QUICK_REPLY, f"[Quick Reply: {message['quick_reply'].get('payload')}]"
            )

        return DecodedContent.unsupported()

    async def enrich_customer(self, event: InboundEvent) -> None:
        """Replace the placeholder name with the sender's profile name.

        Best effort: lookup failures keep the placeholder.
        """
        if self.mock_mode or not self.is_configured:
            return

        try:
            response = await self.client.get(
                f"{self.graph_url}/{event.platform_id}",
                params={"fields": self.profile_fields},
                headers=self._headers(),
            )
            response.raise_for_status()
            profile = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Could not fetch {self.platform.value} profile for {event.platform_id}: {e}")
            return

        if profile.get("first_name"):
            event.customer.first_name = profile["first_name"]
            event.customer.last_name = profile.get("last_name") or ""
        elif profile.get("name"):
            event.customer.first_name, event.customer.last_name = split_name(
                profile["name"], self.default_first_name
            )

        if profile.get("profile_pic"):
            event.conversation_metadata["profile_pic"] = profile["profile_pic"]

    # Encoding

    def build_payload(self, outgoing: OutgoingMessage) -> dict:
        recipient = {"id": outgoing.to}
        options = outgoing.options

        if outgoing.type == "text":
            return {"recipient": recipient, "message": {"text": outgoing.content}}

        if outgoing.type == "media":
            if not options.get("media_url"):
                raise InvalidOutgoingMessageError(f"{self.platform.value} media messages need a media_url")
            return {
                "recipient": recipient,
                "message": {
                    "attachment": {
                        "type": options.get("media_type") or "image",
                        "payload": {"url": options["media_url"]},
                    }
                },
            }

        if outgoing.type == "template":
            return {
                "recipient": recipient,
                "message": {
                    "attachment": {
                        "type": "template",
                        "payload": {
                            "template_type": options.get("template_type") or "generic",
                            "elements": options.get("elements") or [],
                        },
                    }
                },
            }

        raise UnsupportedMessageTypeError(self.platform.value, outgoing.type)

    async def _deliver(self, outgoing: OutgoingMessage, payload: dict) -> dict:
        try:
            response = await self.client.post(
                f"{self.graph_url}/me/messages", json=payload, headers=self._headers()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {self.platform.value} message to {outgoing.to}: {e}")
            if isinstance(e, httpx.HTTPStatusError):
                logger.error(f"   Response: {e.response.text}")
            raise

        result = response.json()
        logger.info(f"Sent {self.platform.value} message to {outgoing.to} (mid: {result.get('message_id')})")
        return result

    def mock_ack(self, outgoing: OutgoingMessage, message_id: str) -> dict:
        return {"recipient_id": outgoing.to, "message_id": message_id}

    def extract_message_id(self, ack: dict) -> str | None:
        return ack.get("message_id")
