"""Dispatch service - routes sends and webhooks to the right platform adapter."""

import logging
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.models.conversation import Platform
from app.services.platforms.base import PlatformAdapter
from app.services.platforms.email import EmailAdapter
from app.services.platforms.errors import UnsupportedPlatformError
from app.services.platforms.facebook import FacebookAdapter
from app.services.platforms.instagram import InstagramAdapter
from app.services.platforms.telegram import TelegramAdapter
from app.services.platforms.types import OutgoingMessage, WebhookResult
from app.services.platforms.whatsapp import WhatsAppAdapter

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: dict[Platform, type[PlatformAdapter]] = {
    Platform.WHATSAPP: WhatsAppAdapter,
    Platform.TELEGRAM: TelegramAdapter,
    Platform.FACEBOOK: FacebookAdapter,
    Platform.INSTAGRAM: InstagramAdapter,
    Platform.EMAIL: EmailAdapter,
}


def parse_platform(name: str) -> Platform:
    """Map a platform name to the enum, raising UnsupportedPlatformError."""
    try:
        return Platform(name.lower())
    except ValueError:
        raise UnsupportedPlatformError(name) from None


class DispatchService:
    """Holds one adapter per platform and forwards calls to it."""

    def __init__(self, adapters: dict[Platform, PlatformAdapter]):
        self.adapters = adapters

    def adapter(self, platform: Platform | str) -> PlatformAdapter:
        key = platform if isinstance(platform, Platform) else parse_platform(platform)
        adapter = self.adapters.get(key)
        if adapter is None:
            raise UnsupportedPlatformError(key.value)
        return adapter

    async def send(self, platform: Platform | str, outgoing: OutgoingMessage) -> dict:
        """Send through the platform's adapter and return its raw acknowledgement."""
        return await self.adapter(platform).send_message(outgoing)

    async def receive(self, db: AsyncSession, platform: Platform | str, payload: dict) -> WebhookResult:
        """Hand a webhook body to the platform's adapter."""
        return await self.adapter(platform).process_webhook(db, payload)

    def configured(self) -> dict[str, bool]:
        """Which platforms have credentials for outbound sends."""
        return {platform.value: adapter.is_configured for platform, adapter in self.adapters.items()}

    async def close(self) -> None:
        for adapter in self.adapters.values():
            await adapter.close()


def build_dispatch(settings: Settings) -> DispatchService:
    """Create a dispatch service with every platform adapter."""
    mock_mode = settings.messaging_mock_mode
    if mock_mode:
        logger.info("Messaging adapters in MOCK mode")
    return DispatchService(
        {platform: cls(settings, mock_mode=mock_mode) for platform, cls in ADAPTER_CLASSES.items()}
    )


@lru_cache
def get_dispatch() -> DispatchService:
    """Get the process-wide dispatch service."""
    return build_dispatch(get_settings())
