"""API dependencies for authentication and common operations."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import settings
from marketplace.core.exceptions import AuthenticationError, AuthorizationError
from marketplace.core.security import verify_token
from marketplace.database import get_db
from marketplace.models.user import User

__all__ = [
    "CurrentUser",
    "DbSession",
    "Pagination",
    "get_current_active_user",
    "get_current_user",
    "get_db",
    "pagination_params",
]

# Security scheme
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DbSession,
) -> User:
    """Get the current authenticated user from JWT token."""
    if not credentials:
        raise AuthenticationError("Missing bearer token")

    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")
    try:
        user_uuid = UUID(str(user_id))
    except ValueError:
        raise AuthenticationError("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are active."""
    if not current_user.is_active:
        raise AuthorizationError("User account is deactivated")
    return current_user


CurrentUser = Annotated[User, Depends(get_current_active_user)]


class Pagination:
    """Page/limit query parameters."""

    def __init__(self, page: int, limit: int) -> None:
        self.page = page
        self.limit = limit


def pagination_params(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = settings.default_page_size,
) -> Pagination:
    return Pagination(page=page, limit=min(limit, settings.max_page_size))
