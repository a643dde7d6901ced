"""Facebook Messenger adapter."""

from app.models.conversation import Platform
from app.services.platforms.meta import MessengerPlatformAdapter


class FacebookAdapter(MessengerPlatformAdapter):
    """Facebook Page conversations. Customers are keyed by page-scoped sender id."""

    platform = Platform.FACEBOOK
    default_first_name = "Facebook"
    profile_fields = "first_name,last_name,profile_pic"

    @property
    def access_token(self) -> str:
        return self.settings.facebook_access_token
