"""
Token manager — save / load / erase per-team OAuth tokens.

This is the single interface the feed layer uses to get an active token
for a given team + platform combination.  Tokens are encrypted at rest
and never leave this module except as the decrypted access token handed
to an adapter.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CallerIdentity
from config.settings import config
from connectors.base import parse_timestamp
from connectors.encryption import decrypt_secret, encrypt_secret
from connectors.errors import InvalidTokenPayload, NotConnected, TokenExpired
from connectors.registry import get_adapter
from connectors.schemas import ConnectionStatus, Platform
from database.helpers import as_utc, upsert_statement
from database.models import Feed, OAuthToken

logger = logging.getLogger(__name__)

# Numbers below this are epoch seconds, above it epoch milliseconds.
_EPOCH_MS_THRESHOLD = 10_000_000_000

ExpiryValue = Union[int, float, str, datetime, None]


def normalize_expires_at(
    expires_at: ExpiryValue = None,
    *,
    expires_in: Optional[Union[int, float]] = None,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Normalize a token expiry into one aware UTC datetime.

    ``expires_at`` (absolute) wins over ``expires_in`` (seconds from now).
    Absolute values may be a datetime, an ISO-8601 string, epoch seconds
    (number or numeric string) or epoch milliseconds.  Neither given →
    ``None`` (non-expiring).

    Raises
    ------
    InvalidTokenPayload – a value that cannot be parsed or is out of range
    """
    now = now or datetime.now(timezone.utc)

    if expires_at is not None and expires_at != "":
        if isinstance(expires_at, datetime):
            return as_utc(expires_at)
        if isinstance(expires_at, bool):
            raise InvalidTokenPayload(f"Unsupported expires_at value: {expires_at!r}")
        if isinstance(expires_at, str):
            try:
                seconds = float(expires_at)
            except ValueError:
                parsed = parse_timestamp(expires_at)
                if parsed is None:
                    raise InvalidTokenPayload(f"Unparseable expires_at value: {expires_at!r}")
                return parsed
        else:
            seconds = expires_at / 1000 if expires_at >= _EPOCH_MS_THRESHOLD else expires_at
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise InvalidTokenPayload(f"Out-of-range expires_at value: {expires_at!r}")

    if expires_in is not None:
        try:
            return now + timedelta(seconds=float(expires_in))
        except (OverflowError, ValueError):
            raise InvalidTokenPayload(f"Out-of-range expires_in value: {expires_in!r}")
    return None


async def save_token(
    session: AsyncSession,
    caller: CallerIdentity,
    platform: Platform,
    access_token: str,
    *,
    refresh_token: Optional[str] = None,
    expires_at: ExpiryValue = None,
    expires_in: Optional[Union[int, float]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ConnectionStatus:
    """
    Store the team's token for ``platform``, replacing any previous row.

    A reconnect overwrites every field; nothing is merged from the old row.
    """
    if not access_token:
        raise InvalidTokenPayload("access_token is required")

    now = datetime.now(timezone.utc)
    values = {
        "team_id": caller.team_id,
        "platform": platform.value,
        "access_token": encrypt_secret(access_token),
        "refresh_token": encrypt_secret(refresh_token),
        "expires_at": normalize_expires_at(expires_at, expires_in=expires_in, now=now),
        "meta": metadata or {},
        "connected_by_user_id": uuid.UUID(caller.user_id),
        "updated_at": now,
    }
    await session.execute(
        upsert_statement(
            session,
            OAuthToken,
            values,
            conflict_columns=["team_id", "platform"],
            update_columns=[k for k in values if k not in ("team_id", "platform")],
        )
    )
    await session.flush()
    logger.info("Saved %s token for team %s (user %s)", platform.value, caller.team_id, caller.user_id)

    return ConnectionStatus(
        platform=platform,
        connected=True,
        expired=_is_expired(values["expires_at"], now),
        expires_at=values["expires_at"],
        updated_at=now,
        connected_by_user_id=caller.user_id,
    )


def _is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    expires_at = as_utc(expires_at)
    return expires_at is not None and expires_at < now


async def _load_token(session: AsyncSession, team_id: int, platform: Platform) -> Optional[OAuthToken]:
    result = await session.execute(
        select(OAuthToken)
        .where(
            OAuthToken.team_id == team_id,
            OAuthToken.platform == platform.value,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_token(
    session: AsyncSession,
    team_id: int,
    platform: Platform,
    *,
    now: Optional[datetime] = None,
) -> str:
    """
    Return the decrypted access token for the team + platform.

    Raises
    ------
    NotConnected – no token row
    TokenExpired – token past its expiry (no refresh flow exists)
    """
    row = await _load_token(session, team_id, platform)
    if row is None or not row.access_token:
        raise NotConnected(f"{platform.value} is not connected")
    if _is_expired(row.expires_at, now or datetime.now(timezone.utc)):
        raise TokenExpired("Stored OAuth token has expired. Refresh the connection.")
    return decrypt_secret(row.access_token)


async def is_connected(session: AsyncSession, team_id: int, platform: Platform) -> bool:
    return await _load_token(session, team_id, platform) is not None


async def get_connection_status(session: AsyncSession, team_id: int) -> Dict[str, ConnectionStatus]:
    """Connection state per platform (no token values)."""
    now = datetime.now(timezone.utc)
    result = await session.execute(select(OAuthToken).where(OAuthToken.team_id == team_id))
    rows = {row.platform: row for row in result.scalars().all()}

    statuses: Dict[str, ConnectionStatus] = {}
    for platform in Platform:
        row = rows.get(platform.value)
        if row is None:
            statuses[platform.value] = ConnectionStatus(platform=platform)
            continue
        statuses[platform.value] = ConnectionStatus(
            platform=platform,
            connected=True,
            expired=_is_expired(row.expires_at, now),
            expires_at=as_utc(row.expires_at),
            updated_at=as_utc(row.updated_at),
            connected_by_user_id=str(row.connected_by_user_id) if row.connected_by_user_id else None,
        )
    return statuses


async def disconnect(
    session: AsyncSession,
    team_id: int,
    platform: Platform,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, int]:
    """
    Erase the team's token for ``platform`` and then its feeds.

    Two separate deletes: if the second fails the token is already gone
    and the orphaned feeds fail closed with ``NotConnected``.  Calling it
    again on a disconnected platform is a no-op.

    Returns the number of token and feed rows removed.
    """
    if config.revoke_on_disconnect:
        await _revoke_at_provider(session, team_id, platform, client=client)

    token_result = await session.execute(
        delete(OAuthToken).where(
            OAuthToken.team_id == team_id,
            OAuthToken.platform == platform.value,
        )
    )
    await session.flush()

    feed_result = await session.execute(
        delete(Feed).where(
            Feed.team_id == team_id,
            Feed.platform == platform.value,
        )
    )
    await session.flush()

    removed = {"tokens": token_result.rowcount or 0, "feeds": feed_result.rowcount or 0}
    logger.info(
        "Disconnected %s for team %s (tokens=%d feeds=%d)",
        platform.value,
        team_id,
        removed["tokens"],
        removed["feeds"],
    )
    return removed


async def _revoke_at_provider(
    session: AsyncSession,
    team_id: int,
    platform: Platform,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> None:
    """Best-effort provider revocation; failures never block the local delete."""
    row = await _load_token(session, team_id, platform)
    if row is None:
        return
    adapter = get_adapter(platform)
    try:
        revoked = await adapter.revoke_token(decrypt_secret(row.access_token), client=client)
    except httpx.HTTPError:
        logger.warning("%s token revocation failed for team %s", platform.value, team_id, exc_info=True)
        return
    if not revoked:
        logger.warning("%s did not confirm token revocation for team %s", platform.value, team_id)
