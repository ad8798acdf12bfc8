"""
GraphApiAdapter — shared base for the two platforms on Meta's Graph API.

Facebook Pages and Instagram Business accounts use the same OAuth dialog,
the same token endpoint and pass the access token as a query parameter
rather than a bearer header.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from config.settings import config
from connectors.base import PlatformAdapter, provider_client, response_json
from connectors.schemas import NormalizedPost

logger = logging.getLogger(__name__)


class GraphApiAdapter(PlatformAdapter):
    """Common Graph API plumbing; subclasses pick the edge and implement ``_normalize``."""

    #: Graph edge listed under the account node, e.g. ``posts`` or ``media``.
    edge: str = ""
    #: Comma-separated ``fields`` selector for the edge.
    fields: str = ""

    @property
    def graph_base(self) -> str:
        return f"https://graph.facebook.com/{config.graph_api_version}"

    @property
    def default_auth_url(self) -> str:
        return f"https://www.facebook.com/{config.graph_api_version}/dialog/oauth"

    @property
    def default_token_url(self) -> str:
        return f"{self.graph_base}/oauth/access_token"

    async def fetch_posts(
        self,
        access_token: str,
        account_id: str,
        limit: int,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[NormalizedPost]:
        resp = await self._get(
            f"{self.graph_base}/{account_id}/{self.edge}",
            client=client,
            params={
                "fields": self.fields,
                "limit": limit,
                "access_token": access_token,
            },
        )
        data = response_json(resp)

        if not resp.is_success:
            error = data.get("error")
            message = (error.get("message") if isinstance(error, dict) else None) or data.get("error_description")
            raise self._fetch_failed(resp, message)

        return self._normalize_items(data.get("data"))

    async def revoke_token(
        self,
        access_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> bool:
        """Remove the app's permissions for the authorizing user."""
        async with provider_client(client) as http:
            resp = await http.delete(
                f"{self.graph_base}/me/permissions",
                params={"access_token": access_token},
            )
        return resp.is_success
