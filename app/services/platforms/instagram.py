"""Instagram messaging adapter."""

from app.models.conversation import Platform
from app.services.platforms.meta import MessengerPlatformAdapter


class InstagramAdapter(MessengerPlatformAdapter):
    """Instagram direct messages. Customers are keyed by Instagram-scoped id."""

    platform = Platform.INSTAGRAM
    default_first_name = "Instagram"
    profile_fields = "name,username,profile_pic"

    @property
    def access_token(self) -> str:
        return self.settings.instagram_access_token
