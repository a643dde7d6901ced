"""Business logic services for Omnidesk."""

# Service modules are imported individually where needed
# to avoid circular imports

__all__ = [
    "conversation",
    "customer",
    "message_store",
    "dispatch",
    "outbound",
    "realtime",
    "leads",
]
