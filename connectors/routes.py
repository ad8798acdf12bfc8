"""
Social connector API routes — platform config, OAuth exchange, tokens, feeds.

Route prefix: /api/v1/social

Every route except ``/providers`` requires a bearer token; the team id
always comes from ``get_caller``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import db_session, get_caller
from auth.models import CallerIdentity
from connectors import credentials, exchange, feeds, token_manager
from connectors.registry import AdapterRegistry
from connectors.schemas import (
    ConnectionStatus,
    ExchangeRequest,
    FeedCreate,
    FeedOut,
    FeedRefreshResult,
    NormalizedPost,
    Platform,
    PlatformConfigUpdate,
    PublicPlatformConfig,
    SaveTokenRequest,
    TokenEnvelope,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["social"])


# ── Providers & configuration ──────────────────────────────────────────


@router.get("/providers")
async def list_providers() -> list[dict]:
    """
    List the supported platforms and whether environment credentials exist.
    No auth required.
    """
    return AdapterRegistry().list_providers()


@router.get("/config", response_model=Dict[str, PublicPlatformConfig])
async def get_platform_config(
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    return await credentials.get_platform_configs(session, caller.team_id)


@router.put("/config/{platform}", response_model=PublicPlatformConfig)
async def save_platform_config(
    platform: Platform,
    body: PlatformConfigUpdate,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    """Create or update the team's OAuth client for a platform (admins only)."""
    saved = await credentials.save_platform_config(session, caller, platform, body)
    await session.commit()
    return saved


@router.get("/connections", response_model=Dict[str, ConnectionStatus])
async def connection_status(
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    return await token_manager.get_connection_status(session, caller.team_id)


# ── OAuth ──────────────────────────────────────────────────────────────


@router.get("/{platform}/authorize")
async def authorization_url(
    platform: Platform,
    state: str = Query(..., min_length=8),
    redirect_uri: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, str]:
    """
    Build the provider consent URL for a client-generated state.

    The state is not stored here; the client keeps it until the redirect
    comes back.
    """
    url = await credentials.build_authorization_url(session, caller.team_id, platform, state, redirect_uri)
    return {"platform": platform.value, "authorization_url": url}


@router.post("/{platform}/exchange", response_model=TokenEnvelope)
async def exchange_code(
    platform: Platform,
    body: ExchangeRequest,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    """Trade an authorization code for tokens.  Nothing is persisted."""
    return await exchange.exchange_code(session, caller, platform, body.code, body.redirect_uri)


@router.post("/{platform}/token", response_model=ConnectionStatus)
async def save_token(
    platform: Platform,
    body: SaveTokenRequest,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    result = await token_manager.save_token(
        session,
        caller,
        platform,
        body.access_token,
        refresh_token=body.refresh_token,
        expires_at=body.expires_at,
        expires_in=body.expires_in,
        metadata=body.metadata,
    )
    await session.commit()
    return result


@router.delete("/{platform}/connection")
async def disconnect(
    platform: Platform,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, int]:
    """Erase the team's token and feeds for a platform.  Idempotent."""
    removed = await token_manager.disconnect(session, caller.team_id, platform)
    await session.commit()
    return removed


# ── Feeds ──────────────────────────────────────────────────────────────


@router.get("/feeds", response_model=List[FeedOut])
async def list_feeds(
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    return await feeds.list_feeds(session, caller.team_id)


@router.post("/feeds", response_model=FeedOut, status_code=status.HTTP_201_CREATED)
async def add_feed(
    body: FeedCreate,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    feed = await feeds.add_feed(session, caller, body.platform, body.account_id, body.display_name)
    await session.commit()
    return feed


@router.post("/feeds/refresh", response_model=List[FeedRefreshResult])
async def refresh_all_feeds(
    limit: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    """Refresh every team feed; failed feeds come back as an error placeholder."""
    results = await feeds.refresh_all_feeds(session, caller, limit)
    await session.commit()
    return results


@router.delete("/feeds/{feed_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_feed(
    feed_id: int,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
) -> None:
    await feeds.remove_feed(session, caller.team_id, feed_id)
    await session.commit()


@router.post("/feeds/{feed_id}/refresh", response_model=List[NormalizedPost])
async def refresh_feed(
    feed_id: int,
    limit: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    posts = await feeds.refresh_feed(session, caller, feed_id, limit)
    await session.commit()
    return posts


@router.get("/feeds/{feed_id}/posts", response_model=List[NormalizedPost])
async def cached_posts(
    feed_id: int,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(db_session),
):
    return await feeds.list_cached_posts(session, caller.team_id, feed_id)
