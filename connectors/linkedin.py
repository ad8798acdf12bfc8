"""
LinkedInAdapter — organization shares via the LinkedIn v2 REST API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from connectors.base import PlatformAdapter, parse_timestamp, response_json
from connectors.schemas import Engagement, NormalizedPost, Platform

logger = logging.getLogger(__name__)

_LI_AUTH_URL = "https://www.linkedin.com/oauth/v2/authorization"
_LI_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
_LI_SHARES_URL = "https://api.linkedin.com/v2/shares"
_LI_POST_URL = "https://www.linkedin.com/feed/update/{post_id}"


class LinkedInAdapter(PlatformAdapter):
    """Adapter for a LinkedIn organization page."""

    @property
    def platform(self) -> Platform:
        return Platform.LINKEDIN

    @property
    def display_name(self) -> str:
        return "LinkedIn"

    @property
    def default_scopes(self) -> str:
        return "r_liteprofile r_organization_social w_organization_social"

    @property
    def default_auth_url(self) -> str:
        return _LI_AUTH_URL

    @property
    def default_token_url(self) -> str:
        return _LI_TOKEN_URL

    def build_authorize_url(self, *, scopes: Optional[str] = None, **kwargs: Any) -> str:
        # LinkedIn expects space-delimited scopes.
        if scopes:
            scopes = scopes.replace(",", " ")
        return super().build_authorize_url(scopes=scopes, **kwargs)

    async def fetch_posts(
        self,
        access_token: str,
        account_id: str,
        limit: int,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[NormalizedPost]:
        resp = await self._get(
            _LI_SHARES_URL,
            client=client,
            params={
                "q": "owners",
                "owners": f"urn:li:organization:{account_id}",
                "count": limit,
            },
            headers={
                "Authorization": f"Bearer {access_token}",
                "X-Restli-Protocol-Version": "2.0.0",
            },
        )
        data = response_json(resp)

        if not resp.is_success:
            raise self._fetch_failed(resp, data.get("message") or data.get("error_description"))

        return self._normalize_items(data.get("elements"))

    def _normalize(self, item: Dict[str, Any]) -> NormalizedPost:
        post_id = item.get("id")
        stats = item.get("statistics") or {}
        return NormalizedPost(
            id=str(post_id),
            title=(item.get("text") or {}).get("text") or "No text",
            published_at=parse_timestamp((item.get("created") or {}).get("time"), epoch_ms=True),
            link=_LI_POST_URL.format(post_id=post_id) if post_id else None,
            engagement=Engagement(
                likes=stats.get("numLikes") or 0,
                comments=stats.get("numComments") or 0,
            ),
            raw=item,
        )
