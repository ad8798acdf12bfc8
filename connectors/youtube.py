"""
YouTubeAdapter — Google OAuth2 + YouTube Data API v3 search.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from connectors.base import PlatformAdapter, parse_timestamp, provider_client, response_json
from connectors.schemas import NormalizedPost, Platform

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
_YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


class YouTubeAdapter(PlatformAdapter):
    """Adapter for a YouTube channel's latest uploads."""

    @property
    def platform(self) -> Platform:
        return Platform.YOUTUBE

    @property
    def display_name(self) -> str:
        return "YouTube"

    @property
    def default_scopes(self) -> str:
        return "https://www.googleapis.com/auth/youtube.readonly"

    @property
    def default_auth_url(self) -> str:
        return _GOOGLE_AUTH_URL

    @property
    def default_token_url(self) -> str:
        return _GOOGLE_TOKEN_URL

    def extra_authorize_params(self) -> Dict[str, str]:
        return {
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
        }

    def extra_token_params(self) -> Dict[str, str]:
        return {"access_type": "offline"}

    async def fetch_posts(
        self,
        access_token: str,
        account_id: str,
        limit: int,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[NormalizedPost]:
        resp = await self._get(
            _YOUTUBE_SEARCH_URL,
            client=client,
            params={
                "part": "snippet",
                "channelId": account_id,
                "maxResults": limit,
                "order": "date",
                "type": "video",
            },
            headers={"Authorization": f"Bearer {access_token}"},
        )
        data = response_json(resp)

        if not resp.is_success:
            error = data.get("error")
            message = (error.get("message") if isinstance(error, dict) else None) or data.get("error_description")
            raise self._fetch_failed(resp, message)

        return self._normalize_items(data.get("items"))

    def _normalize(self, item: dict) -> Optional[NormalizedPost]:
        ident = item.get("id")
        if isinstance(ident, dict):
            video_id = ident.get("videoId")
            post_id = video_id or ident.get("channelId") or ident.get("playlistId")
        else:
            video_id, post_id = None, ident
        if not post_id:
            return None
        snippet = item.get("snippet") or {}
        thumbnails = snippet.get("thumbnails") or {}
        thumb = thumbnails.get("medium") or thumbnails.get("default") or {}

        return NormalizedPost(
            id=str(post_id),
            title=snippet.get("title") or "Untitled video",
            description=snippet.get("description") or "",
            published_at=parse_timestamp(snippet.get("publishedAt")),
            link=_WATCH_URL.format(video_id=video_id) if video_id else None,
            thumbnail=thumb.get("url"),
            raw=item,
        )

    async def revoke_token(
        self,
        access_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> bool:
        """Revoke the token at Google."""
        async with provider_client(client) as http:
            resp = await http.post(_GOOGLE_REVOKE_URL, params={"token": access_token})
        return resp.status_code == 200
