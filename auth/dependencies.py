"""
FastAPI dependencies for authentication.

Provides ``db_session``, ``get_current_user_id`` and ``get_caller``.
``get_caller`` is the only source of a team id for every social route.
"""

from __future__ import annotations

import uuid
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import verify_token
from auth.models import CallerIdentity, User
from connectors.errors import NotTeamMember
from database.session import get_db_session

_bearer_scheme = HTTPBearer()


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id`` (UUID string).
    """
    return verify_token(credentials.credentials)


async def resolve_caller(session: AsyncSession, user_id: str) -> CallerIdentity:
    """
    Load the caller's team membership.

    Raises ``HTTPException(401)`` for unknown users and ``NotTeamMember``
    for users without a team.
    """
    try:
        uid = uuid.UUID(str(user_id))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")

    user = (await session.execute(select(User).where(User.user_id == uid))).scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    if user.team_id is None:
        raise NotTeamMember("User not associated with a team")
    return CallerIdentity(user_id=str(user.user_id), team_id=user.team_id, role=user.role or "member")


async def get_caller(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
) -> CallerIdentity:
    """Authenticated caller with its server-side team id."""
    return await resolve_caller(session, user_id)
