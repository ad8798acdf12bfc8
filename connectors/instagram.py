"""
InstagramAdapter — recent media of an Instagram Business account.
"""

from __future__ import annotations

from typing import Any, Dict

from connectors.base import parse_timestamp
from connectors.graph import GraphApiAdapter
from connectors.schemas import Engagement, NormalizedPost, Platform


class InstagramAdapter(GraphApiAdapter):
    edge = "media"
    fields = "caption,media_type,media_url,permalink,thumbnail_url,timestamp,like_count,comments_count"

    @property
    def platform(self) -> Platform:
        return Platform.INSTAGRAM

    @property
    def display_name(self) -> str:
        return "Instagram"

    @property
    def default_scopes(self) -> str:
        return "instagram_basic,instagram_content_publish"

    def _normalize(self, item: Dict[str, Any]) -> NormalizedPost:
        # Videos carry a thumbnail_url; images only have media_url.
        return NormalizedPost(
            id=str(item.get("id")),
            title=item.get("caption") or "No caption",
            published_at=parse_timestamp(item.get("timestamp")),
            link=item.get("permalink"),
            thumbnail=item.get("thumbnail_url") or item.get("media_url"),
            engagement=Engagement(
                likes=item.get("like_count") or 0,
                comments=item.get("comments_count") or 0,
            ),
            raw=item,
        )
