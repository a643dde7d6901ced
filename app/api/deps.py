"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import async_session_maker, get_db
from app.models import User
from app.services.dispatch import DispatchService, get_dispatch
from app.services.realtime import RealtimeHub, get_realtime_hub
from app.utils.jwt import get_user_id_from_token

__all__ = [
    "get_db",
    "AsyncSession",
    "get_current_user",
    "get_session_factory",
    "get_dispatch",
    "get_realtime_hub",
    "DBSession",
    "CurrentUser",
    "Dispatch",
    "Hub",
    "PaginationParams",
]

# Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives a request (websocket frames)."""
    return async_session_maker


async def authenticate_token(db: AsyncSession, token: str | None) -> User | None:
    """Resolve a bearer token to an active agent, or None."""
    if not token:
        return None
    user_id = get_user_id_from_token(token)
    if user_id is None:
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


# Auth dependency - get current agent from JWT
async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current agent from the JWT token.

    Raises 401 if not authenticated or token is invalid.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await authenticate_token(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


DBSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
Dispatch = Annotated[DispatchService, Depends(get_dispatch)]
Hub = Annotated[RealtimeHub, Depends(get_realtime_hub)]


# Pagination parameters
class PaginationParams:
    """Pagination query parameters."""

    def __init__(
        self,
        page: Annotated[int, Query(ge=1, description="Page number, starting at 1")] = 1,
        limit: Annotated[int, Query(ge=1, le=100, description="Items per page")] = 20,
    ):
        self.page = page
        self.limit = limit
