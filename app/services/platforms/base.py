"""Base class shared by all messaging platform adapters."""

from __future__ import annotations

import hmac
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.models.conversation import Platform
from app.services import conversation as conversation_service
from app.services import message_store
from app.services.platforms.errors import PlatformNotConfiguredError
from app.services.platforms.types import (
    DecodedContent,
    DeliveryReceipt,
    InboundEvent,
    IngestedMessage,
    OutgoingMessage,
    ParsedEvent,
    WebhookResult,
)
from app.services.tracing import set_platform_id, traced

logger = logging.getLogger(__name__)


def as_list(value: Any) -> list:
    """Treat a missing or non-list webhook field as empty."""
    return value if isinstance(value, list) else []


def from_unix(value: Any, millis: bool = False) -> datetime:
    """Convert a platform timestamp (seconds or milliseconds) to aware UTC.

    Missing or unparsable timestamps fall back to the current time.
    """
    try:
        seconds = float(value) / 1000 if millis else float(value)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def split_name(name: str | None, default_first: str, default_last: str = "User") -> tuple[str, str]:
    """Split a display name into first/last, using defaults when empty."""
    parts = (name or "").strip().split(maxsplit=1)
    if not parts:
        return default_first, default_last
    return parts[0], parts[1] if len(parts) > 1 else ""


class PlatformAdapter(ABC):
    """Translate one platform's webhooks and send API to the unified model.

    Subclasses implement the decode half (``iter_events``, ``parse_event``,
    ``classify``) and the encode half (``build_payload``, ``_deliver``,
    ``extract_message_id``). ``process_webhook`` and ``send_message`` are
    shared.
    """

    platform: Platform
    #: Whether the platform uses the hub.* GET subscription handshake
    supports_verification: bool = False

    def __init__(
        self,
        settings: Settings,
        mock_mode: bool = False,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize adapter.

        Args:
            settings: Application settings holding platform credentials
            mock_mode: If True, log outbound sends instead of calling the platform
            client: HTTP client to use (tests pass one with a mock transport)
        """
        self.settings = settings
        self.mock_mode = mock_mode
        self.client = client or httpx.AsyncClient(timeout=30.0)

    # Decoding

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials for outbound sends are present."""

    @abstractmethod
    def iter_events(self, payload: dict) -> Iterator[Any]:
        """Split a webhook body into raw per-event fragments."""

    @abstractmethod
    def parse_event(self, raw: Any) -> ParsedEvent | None:
        """Normalize one fragment.

        Returns None for events that are understood but not stored (read
        receipts, postbacks, callback queries). Raises MalformedEventError
        when required fields are missing.
        """

    @abstractmethod
    def classify(self, message: dict) -> DecodedContent:
        """Decode a message body into displayable text and its kind."""

    async def enrich_customer(self, event: InboundEvent) -> None:
        """Fill in profile details before a new customer is created."""

    def verify_subscription(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Answer the hub.* subscription handshake.

        Returns the challenge when the token matches, otherwise None.
        """
        if not self.supports_verification:
            return None
        expected = self.settings.meta_webhook_verify_token
        if mode != "subscribe" or not expected or token is None:
            return None
        if not hmac.compare_digest(token.encode(), expected.encode()):
            return None
        return challenge

    # Encoding

    @abstractmethod
    def build_payload(self, outgoing: OutgoingMessage) -> dict:
        """Build the platform request body for an outgoing message.

        Raises UnsupportedMessageTypeError for unknown send types.
        """

    @abstractmethod
    async def _deliver(self, outgoing: OutgoingMessage, payload: dict) -> dict:
        """Perform the actual platform call and return its acknowledgement."""

    @abstractmethod
    def mock_ack(self, outgoing: OutgoingMessage, message_id: str) -> dict:
        """Acknowledgement shaped like the platform's, for mock mode."""

    @abstractmethod
    def extract_message_id(self, ack: dict) -> str | None:
        """Pull the platform message id out of a send acknowledgement."""

    @traced(trace_type="external_api", capture_args=["outgoing"])
    async def send_message(self, outgoing: OutgoingMessage) -> dict:
        """Send a message through the platform.

        Network and API errors propagate to the caller.
        """
        payload = self.build_payload(outgoing)

        if self.mock_mode:
            logger.info(
                f"[MOCK] Sending {self.platform.value} {outgoing.type} message to {outgoing.to}: "
                f"{outgoing.content[:80]}"
            )
            return self.mock_ack(outgoing, f"mock_{uuid.uuid4().hex}")

        if not self.is_configured:
            raise PlatformNotConfiguredError(f"{self.platform.value} credentials are not configured")

        return await self._deliver(outgoing, payload)

    # Ingestion

    async def process_webhook(self, db: AsyncSession, payload: dict) -> WebhookResult:
        """Ingest every event in a webhook body.

        Each event runs in its own savepoint; a failing event is logged and
        counted without affecting the others.
        """
        result = WebhookResult()

        for index, raw in enumerate(self._split_events(payload, result)):
            try:
                async with db.begin_nested():
                    outcome = await self._process_event(db, raw)
            except Exception as e:
                result.failed += 1
                logger.error(
                    f"Failed to process {self.platform.value} event #{index}: {e}",
                    exc_info=True,
                )
                continue

            if outcome is None:
                result.ignored += 1
                continue

            result.processed += 1
            if isinstance(outcome, IngestedMessage):
                result.ingested.append(outcome)

        logger.info(
            f"{self.platform.value} webhook: processed={result.processed} "
            f"failed={result.failed} ignored={result.ignored}"
        )
        return result

    def _split_events(self, payload: dict, result: WebhookResult) -> list[Any]:
        """Collect the body's fragments, keeping those yielded before a malformed container."""
        fragments: list[Any] = []
        events = self.iter_events(payload)
        while True:
            try:
                fragments.append(next(events))
            except StopIteration:
                return fragments
            except Exception as e:
                result.failed += 1
                logger.error(
                    f"Malformed {self.platform.value} webhook body after {len(fragments)} events: {e}",
                    exc_info=True,
                )
                return fragments

    async def _process_event(self, db: AsyncSession, raw: Any) -> IngestedMessage | DeliveryReceipt | None:
        event = self.parse_event(raw)
        if event is None:
            return None

        if isinstance(event, DeliveryReceipt):
            await message_store.apply_delivery_receipt(db, event)
            return event

        set_platform_id(event.platform_id)
        conversation = await conversation_service.resolve_conversation(db, event, adapter=self)
        message = await message_store.record_inbound_message(db, conversation, event)
        return IngestedMessage(conversation=conversation, message=message)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
