"""
FastAPI dependencies for authentication.

Provides ``db_session`` and ``get_current_user`` dependencies that
are used across all protected routes.
"""

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import AuthenticatedUser
from database.session import get_db_session

_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    session_token: Optional[str] = Cookie(default=None),
) -> AuthenticatedUser:
    """
    Resolve the caller from the Bearer token, falling back to the
    ``session_token`` cookie (the authorize endpoint is a browser redirect).
    """
    from auth.jwt import verify_token

    token = credentials.credentials if credentials else session_token
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return verify_token(token)
