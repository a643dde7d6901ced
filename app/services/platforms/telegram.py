"""Telegram Bot API adapter."""

import logging
from collections.abc import Iterator

import httpx

from app.models.conversation import Platform
from app.services.platforms.base import PlatformAdapter, from_unix
from app.services.platforms.errors import (
    InvalidOutgoingMessageError,
    MalformedEventError,
    PlatformAPIError,
    UnsupportedMessageTypeError,
)
from app.services.platforms.types import (
    ContentKind,
    CustomerIdentity,
    DecodedContent,
    InboundEvent,
    OutgoingMessage,
    ParsedEvent,
)

logger = logging.getLogger(__name__)

# Send type -> Bot API method
SEND_METHODS = {
    "text": "sendMessage",
    "photo": "sendPhoto",
    "document": "sendDocument",
    "location": "sendLocation",
}


class TelegramAdapter(PlatformAdapter):
    """Adapter for a Telegram bot. Conversations are keyed by chat id."""

    platform = Platform.TELEGRAM

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.telegram_bot_token)

    @property
    def api_url(self) -> str:
        return f"{self.settings.telegram_api_base_url}/bot{self.settings.telegram_bot_token}"

    # Decoding

    def iter_events(self, payload: dict) -> Iterator[dict]:
        # Telegram delivers exactly one update per request
        yield payload

    def parse_event(self, update: dict) -> ParsedEvent | None:
        if "callback_query" in update:
            query = update["callback_query"] or {}
            logger.info(
                f"Telegram callback query from {(query.get('from') or {}).get('id')}: {query.get('data')}"
            )
            return None

        message = update.get("message")
        if message is None:
            logger.debug(f"Ignoring Telegram update without message: {sorted(update)}")
            return None

        chat = message.get("chat") or {}
        sender = message.get("from") or {}
        if "id" not in chat or "id" not in sender:
            raise MalformedEventError("Telegram message without chat or sender id")

        user_id = str(sender["id"])
        username = sender.get("username")
        if sender.get("first_name") or sender.get("last_name"):
            first_name, last_name = sender.get("first_name") or "", sender.get("last_name") or ""
        else:
            first_name, last_name = "Telegram", "User"

        return InboundEvent(
            platform=self.platform,
            platform_id=str(chat["id"]),
            content=self.classify(message),
            sent_at=from_unix(message.get("date")),
            platform_message_id=str(message["message_id"]) if "message_id" in message else None,
            customer=CustomerIdentity(
                source=self.platform.value,
                lookup={"phone": user_id, "source": self.platform.value},
                first_name=first_name,
                last_name=last_name,
                phone=user_id,
                notes=f"Username: @{username}" if username else None,
            ),
            conversation_metadata={
                "chat_id": chat["id"],
                "user_id": sender["id"],
                "username": username,
                "chat_type": chat.get("type"),
            },
            message_metadata={"date": message.get("date"), "raw": message},
        )

    def classify(self, message: dict) -> DecodedContent:
        if "text" in message:
            return DecodedContent(ContentKind.TEXT, message["text"] or "")
        if "photo" in message:
            return DecodedContent(ContentKind.IMAGE, "[Photo]")
        if "audio" in message:
            return DecodedContent(ContentKind.AUDIO, "[Audio]")
        if "video" in message:
            return DecodedContent(ContentKind.VIDEO, "[Video]")
        if "document" in message:
            file_name = (message["document"] or {}).get("file_name") or "Unknown file"
            return DecodedContent(ContentKind.DOCUMENT, f"[Document: {file_name}]")
        if "location" in message:
            location = message["location"] or {}
            return DecodedContent(
                ContentKind.LOCATION,
                f"[Location: {location.get('latitude')}, {location.get('longitude')}]",
            )
        if "contact" in message:
            return DecodedContent(ContentKind.CONTACT, "[Contact information]")
        if "sticker" in message:
            return DecodedContent(ContentKind.STICKER, "[Sticker]")
        if "voice" in message:
            return DecodedContent(ContentKind.VOICE, "[Voice message]")
        return DecodedContent.unsupported()

    # Encoding

    def build_payload(self, outgoing: OutgoingMessage) -> dict:
        options = outgoing.options

        if outgoing.type == "text":
            return {"chat_id": outgoing.to, "text": outgoing.content, "parse_mode": "HTML"}

        if outgoing.type == "photo":
            if not options.get("photo_url"):
                raise InvalidOutgoingMessageError("Telegram photos need a photo_url")
            return {
                "chat_id": outgoing.to,
                "photo": options["photo_url"],
                "caption": options.get("caption") or outgoing.content,
            }

        if outgoing.type == "document":
            if not options.get("document_url"):
                raise InvalidOutgoingMessageError("Telegram documents need a document_url")
            return {
                "chat_id": outgoing.to,
                "document": options["document_url"],
                "caption": options.get("caption") or outgoing.content,
            }

        if outgoing.type == "location":
            if options.get("latitude") is None or options.get("longitude") is None:
                raise InvalidOutgoingMessageError("Telegram locations need latitude and longitude")
            return {
                "chat_id": outgoing.to,
                "latitude": options["latitude"],
                "longitude": options["longitude"],
            }

        raise UnsupportedMessageTypeError(self.platform.value, outgoing.type)

    async def _deliver(self, outgoing: OutgoingMessage, payload: dict) -> dict:
        url = f"{self.api_url}/{SEND_METHODS[outgoing.type]}"
        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            # Never log the URL: it contains the bot token
            logger.error(f"Failed to send Telegram {outgoing.type} to chat {outgoing.to}: {type(e).__name__}")
            if isinstance(e, httpx.HTTPStatusError):
                logger.error(f"   Response: {e.response.text}")
            raise

        result = response.json()
        if not result.get("ok"):
            raise PlatformAPIError(result.get("description") or "Telegram API returned ok=false")
        logger.info(f"Sent Telegram {outgoing.type} to chat {outgoing.to}")
        return result

    def mock_ack(self, outgoing: OutgoingMessage, message_id: str) -> dict:
        return {"ok": True, "result": {"message_id": message_id, "chat": {"id": outgoing.to}}}

    def extract_message_id(self, ack: dict) -> str | None:
        message_id = (ack.get("result") or {}).get("message_id")
        return str(message_id) if message_id is not None else None
