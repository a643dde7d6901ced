"""JWT utilities for agent authentication.

Tokens are used on both the REST API (``Authorization: Bearer``) and the
realtime socket (``?token=``); both paths resolve them with
``get_user_id_from_token``.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from pydantic import BaseModel, ValidationError

from app.config import get_settings

ACCESS_TOKEN_TYPE = "agent_access"


class TokenPayload(BaseModel):
    """Claims carried by an agent token."""

    sub: UUID  # agent user id
    exp: datetime
    iat: datetime
    type: str


def create_access_token(user_id: UUID, expires_in: timedelta | None = None) -> str:
    """Issue an access token for an agent.

    Args:
        user_id: The agent's user id
        expires_in: Lifetime override; defaults to the configured expiry
    """
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_in or timedelta(minutes=settings.jwt_access_token_expire_minutes)

    return jwt.encode(
        {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + lifetime,
            "type": ACCESS_TOKEN_TYPE,
        },
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> TokenPayload | None:
    """Verify signature and expiry. Returns None for any unusable token."""
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp", "iat"]},
        )
        return TokenPayload.model_validate(claims)
    except (jwt.InvalidTokenError, ValidationError):
        return None


def get_user_id_from_token(token: str) -> UUID | None:
    payload = decode_access_token(token)
    if payload is None or payload.type != ACCESS_TOKEN_TYPE:
        return None
    return payload.sub
