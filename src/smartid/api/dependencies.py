"""FastAPI dependencies for dependency injection."""

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from smartid.config import Settings, get_settings
from smartid.database import init_db
from smartid.errors import AuthError


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success, rolls back on any error."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_app_settings() -> Settings:
    return get_settings()


AppSettings = Annotated[Settings, Depends(get_app_settings)]


async def require_service_token(
    settings: AppSettings,
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Check the bearer service token when one is configured."""
    if not settings.service_token:
        return
    if not authorization:
        raise AuthError("Authorization header is required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("Authorization header must be a Bearer token")
    if not secrets.compare_digest(token.strip(), settings.service_token):
        raise AuthError("Invalid service token", forbidden=True)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ServiceToken = Depends(require_service_token)
