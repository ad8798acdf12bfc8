"""
FacebookAdapter — recent posts of a Facebook Page.
"""

from __future__ import annotations

from typing import Any, Dict

from connectors.base import parse_timestamp
from connectors.graph import GraphApiAdapter
from connectors.schemas import Engagement, NormalizedPost, Platform


class FacebookAdapter(GraphApiAdapter):
    edge = "posts"
    fields = (
        "message,created_time,permalink_url,full_picture,"
        "likes.summary(true),comments.summary(true)"
    )

    @property
    def platform(self) -> Platform:
        return Platform.FACEBOOK

    @property
    def display_name(self) -> str:
        return "Facebook"

    @property
    def default_scopes(self) -> str:
        return "pages_show_list,pages_read_engagement,pages_read_user_content"

    def _normalize(self, item: Dict[str, Any]) -> NormalizedPost:
        likes = ((item.get("likes") or {}).get("summary") or {}).get("total_count")
        comments = ((item.get("comments") or {}).get("summary") or {}).get("total_count")
        return NormalizedPost(
            id=str(item.get("id")),
            title=item.get("message") or "No caption",
            published_at=parse_timestamp(item.get("created_time")),
            link=item.get("permalink_url"),
            thumbnail=item.get("full_picture"),
            engagement=Engagement(likes=likes or 0, comments=comments or 0),
            raw=item,
        )
