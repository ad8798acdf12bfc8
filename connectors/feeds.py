"""
Feed orchestration — feed subscriptions, on-demand refresh and the post cache.

A refresh loads the team's token, fails fast on a missing or expired one,
calls the platform adapter and then upserts the returned posts into the
cache.  The cache write is best-effort: its failure is logged and never
turns a successful fetch into an error.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CallerIdentity
from connectors.base import PlatformAdapter, clamp_limit
from connectors.errors import FeedNotFound, InvalidFeed, NotConnected, SocialConnectorError
from connectors.registry import get_adapter
from connectors.schemas import FeedRefreshResult, NormalizedPost, Platform
from connectors.token_manager import get_active_token, is_connected
from database.helpers import upsert_statement
from database.models import CachedPost, Feed

logger = logging.getLogger(__name__)


# ── Feed subscriptions ─────────────────────────────────────────────────


async def list_feeds(session: AsyncSession, team_id: int) -> List[Feed]:
    result = await session.execute(
        select(Feed).where(Feed.team_id == team_id).order_by(Feed.created_at.desc(), Feed.id.desc())
    )
    return list(result.scalars().all())


async def get_feed(session: AsyncSession, team_id: int, feed_id: int) -> Feed:
    """Load one of the team's feeds; other teams' feeds are not found."""
    result = await session.execute(
        select(Feed).where(Feed.id == feed_id, Feed.team_id == team_id)
    )
    feed = result.scalar_one_or_none()
    if feed is None:
        raise FeedNotFound(f"Feed {feed_id} not found")
    return feed


async def add_feed(
    session: AsyncSession,
    caller: CallerIdentity,
    platform: Platform,
    account_id: str,
    display_name: Optional[str] = None,
) -> Feed:
    """
    Subscribe the team to an account on a connected platform.

    Re-adding an existing (platform, account) returns that feed with the
    label updated.
    """
    account_id = (account_id or "").strip()
    if not account_id:
        raise InvalidFeed("account_id is required")
    if not await is_connected(session, caller.team_id, platform):
        raise NotConnected(f"Connect {get_adapter(platform).display_name} before adding feeds.")

    label = (display_name or "").strip() or account_id
    result = await session.execute(
        select(Feed).where(
            Feed.team_id == caller.team_id,
            Feed.platform == platform.value,
            Feed.account_id == account_id,
        )
    )
    feed = result.scalar_one_or_none()
    if feed is None:
        feed = Feed(
            team_id=caller.team_id,
            platform=platform.value,
            account_id=account_id,
            display_name=label,
            created_at=datetime.now(timezone.utc),
        )
        session.add(feed)
        logger.info("Feed added: team=%s platform=%s account=%s", caller.team_id, platform.value, account_id)
    else:
        feed.display_name = label
    await session.flush()
    return feed


async def remove_feed(session: AsyncSession, team_id: int, feed_id: int) -> None:
    feed = await get_feed(session, team_id, feed_id)
    purged = await purge_cached_posts(session, team_id, Platform(feed.platform), feed.account_id)
    await session.delete(feed)
    await session.flush()
    logger.info("Feed removed: team=%s feed=%s (cached posts purged=%d)", team_id, feed_id, purged)


# ── Refresh ────────────────────────────────────────────────────────────


@dataclass
class _PreparedFetch:
    feed: Feed
    adapter: PlatformAdapter
    access_token: str


async def _prepare(session: AsyncSession, feed: Feed) -> _PreparedFetch:
    platform = Platform(feed.platform)
    access_token = await get_active_token(session, feed.team_id, platform)
    return _PreparedFetch(feed=feed, adapter=get_adapter(platform), access_token=access_token)


def error_placeholder(message: str) -> NormalizedPost:
    """Synthetic post standing in for a feed that failed to load; never cached."""
    return NormalizedPost(
        id="error",
        title="Error fetching posts",
        description=message,
        published_at=datetime.now(timezone.utc),
        is_error=True,
    )


async def cache_posts(
    session: AsyncSession,
    feed: Feed,
    posts: Sequence[NormalizedPost],
) -> bool:
    """
    Upsert posts keyed by (team, platform, account, post id).

    Runs in a savepoint; on failure the savepoint is rolled back, the error
    logged, and ``False`` returned.
    """
    rows = [
        {
            "team_id": feed.team_id,
            "platform": feed.platform,
            "account_id": feed.account_id,
            "post_id": post.id,
            "payload": post.model_dump(mode="json"),
            "published_at": post.published_at,
            "fetched_at": datetime.now(timezone.utc),
        }
        for post in posts
        if not post.is_error
    ]
    if not rows:
        return True
    try:
        async with session.begin_nested():
            await session.execute(
                upsert_statement(
                    session,
                    CachedPost,
                    rows,
                    conflict_columns=["team_id", "platform", "account_id", "post_id"],
                    update_columns=["payload", "published_at", "fetched_at"],
                )
            )
    except SQLAlchemyError:
        logger.warning(
            "Post cache upsert skipped for team=%s platform=%s account=%s",
            feed.team_id,
            feed.platform,
            feed.account_id,
            exc_info=True,
        )
        return False
    return True


async def refresh_feed(
    session: AsyncSession,
    caller: CallerIdentity,
    feed_id: int,
    limit: Any = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[NormalizedPost]:
    """
    Fetch a feed's latest posts and cache them.

    Raises
    ------
    FeedNotFound       – not one of the caller's team feeds
    NotConnected       – no token for the feed's platform
    TokenExpired       – token expired; no provider call is made
    AdapterFetchFailed – provider error (nothing is cached)
    """
    feed = await get_feed(session, caller.team_id, feed_id)
    prepared = await _prepare(session, feed)
    posts = await prepared.adapter.fetch_posts(
        prepared.access_token,
        feed.account_id,
        clamp_limit(limit),
        client=client,
    )
    await cache_posts(session, feed, posts)
    return posts


async def refresh_all_feeds(
    session: AsyncSession,
    caller: CallerIdentity,
    limit: Any = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> List[FeedRefreshResult]:
    """
    Refresh every feed of the caller's team.

    Provider calls run concurrently; database work stays on the one
    session, before and after.  A failing feed yields a single error
    placeholder and never affects its siblings.
    """
    feeds = await list_feeds(session, caller.team_id)
    count = clamp_limit(limit)

    results: Dict[int, FeedRefreshResult] = {}
    ready: List[_PreparedFetch] = []
    for feed in feeds:
        try:
            ready.append(await _prepare(session, feed))
        except SocialConnectorError as exc:
            results[feed.id] = _failed_result(feed, exc)

    fetched = await asyncio.gather(
        *(p.adapter.fetch_posts(p.access_token, p.feed.account_id, count, client=client) for p in ready),
        return_exceptions=True,
    )

    for prepared, outcome in zip(ready, fetched):
        feed = prepared.feed
        if isinstance(outcome, SocialConnectorError):
            results[feed.id] = _failed_result(feed, outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            await cache_posts(session, feed, outcome)
            results[feed.id] = FeedRefreshResult(
                feed_id=feed.id,
                platform=Platform(feed.platform),
                account_id=feed.account_id,
                posts=outcome,
            )

    return [results[feed.id] for feed in feeds]


def _failed_result(feed: Feed, exc: SocialConnectorError) -> FeedRefreshResult:
    message = exc.message
    logger.warning("Feed %s refresh failed: %s", feed.id, message)
    return FeedRefreshResult(
        feed_id=feed.id,
        platform=Platform(feed.platform),
        account_id=feed.account_id,
        posts=[error_placeholder(message)],
        error=message,
        error_code=type(exc).__name__,
    )


# ── Cache reads ────────────────────────────────────────────────────────


async def list_cached_posts(session: AsyncSession, team_id: int, feed_id: int) -> List[NormalizedPost]:
    """Cached posts for one of the team's feeds, newest first."""
    feed = await get_feed(session, team_id, feed_id)
    result = await session.execute(
        select(CachedPost)
        .where(
            CachedPost.team_id == team_id,
            CachedPost.platform == feed.platform,
            CachedPost.account_id == feed.account_id,
        )
        .order_by(CachedPost.published_at.desc(), CachedPost.post_id)
    )
    return [NormalizedPost.model_validate(row.payload) for row in result.scalars().all()]


async def purge_cached_posts(session: AsyncSession, team_id: int, platform: Platform, account_id: str) -> int:
    result = await session.execute(
        delete(CachedPost).where(
            CachedPost.team_id == team_id,
            CachedPost.platform == platform.value,
            CachedPost.account_id == account_id,
        )
    )
    return result.rowcount or 0
