"""Errors raised by platform adapters and dispatch."""


class PlatformError(Exception):
    """Base class for messaging platform errors."""


class UnsupportedPlatformError(PlatformError):
    """No adapter is registered for the requested platform."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"Unsupported platform: {platform}")


class PlatformNotConfiguredError(PlatformError):
    """Credentials for the platform are missing."""


class PlatformAPIError(PlatformError):
    """The platform API answered, but rejected the request."""


class InvalidOutgoingMessageError(PlatformError, ValueError):
    """An outgoing message is missing fields its send type needs."""


class UnsupportedMessageTypeError(InvalidOutgoingMessageError):
    """The adapter has no payload builder for the requested send type."""

    def __init__(self, platform: str, message_type: str):
        self.platform = platform
        self.message_type = message_type
        super().__init__(f"Unsupported message type for {platform}: {message_type}")


class MalformedEventError(PlatformError):
    """A webhook event is missing the fields needed to normalize it."""
