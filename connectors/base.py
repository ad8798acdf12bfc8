"""
PlatformAdapter — abstract interface for all social platform adapters.

Every platform (YouTube, Facebook, Instagram, LinkedIn) subclasses this
and implements the three core operations: building the authorization
URL, building the token request, and fetching recent posts as
``NormalizedPost`` objects.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Union
from urllib.parse import urlencode

import httpx

from config.settings import config
from connectors.errors import AdapterFetchFailed
from connectors.schemas import NormalizedPost, Platform

logger = logging.getLogger(__name__)

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


@dataclass(frozen=True)
class TokenRequest:
    """A form-encoded POST to a provider's token endpoint."""

    url: str
    data: Dict[str, str] = field(default_factory=dict)


@asynccontextmanager
async def provider_client(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` if given, else a short-lived client with httpx defaults."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as own:
        yield own


def clamp_limit(limit: Any) -> int:
    """Clamp a requested result count to [1, max]; junk or non-positive → default."""
    default = config.default_feed_limit
    if isinstance(limit, str):
        try:
            limit = float(limit)
        except ValueError:
            return default
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        return default
    if limit != limit or limit <= 0:  # NaN
        return default
    return int(min(max(limit, 1), config.max_feed_limit))


def parse_timestamp(value: Union[str, int, float, None], *, epoch_ms: bool = False) -> Optional[datetime]:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``Z`` and compact ``+0000`` offsets included)
    and, with ``epoch_ms``, epoch milliseconds.  Unparseable input → None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if epoch_ms else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug("Out-of-range provider timestamp: %r", value)
            return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable provider timestamp: %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def response_json(resp: httpx.Response) -> Dict[str, Any]:
    """Decode a JSON object body; non-JSON bodies become ``{}``."""
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class PlatformAdapter(ABC):
    """Abstract base for all platform adapters."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def platform(self) -> Platform:
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    @abstractmethod
    def default_scopes(self) -> str:
        """Scope string requested when the team config does not set one."""
        ...

    @property
    @abstractmethod
    def default_auth_url(self) -> str:
        ...

    @property
    @abstractmethod
    def default_token_url(self) -> str:
        ...

    def extra_authorize_params(self) -> Dict[str, str]:
        """Provider-specific additions to the authorization query."""
        return {}

    def extra_token_params(self) -> Dict[str, str]:
        """Provider-specific additions to the token request body."""
        return {}

    # ── OAuth flow ──────────────────────────────────────────────────────

    def build_authorize_url(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        state: str,
        scopes: Optional[str] = None,
        auth_url: Optional[str] = None,
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": scopes or self.default_scopes,
            "state": state,
        }
        params.update(self.extra_authorize_params())
        return f"{auth_url or self.default_auth_url}?{urlencode(params)}"

    def build_token_request(
        self,
        *,
        code: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_url: Optional[str] = None,
    ) -> TokenRequest:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
        }
        data.update(self.extra_token_params())
        return TokenRequest(url=token_url or self.default_token_url, data=data)

    # ── Feed ────────────────────────────────────────────────────────────

    @abstractmethod
    async def fetch_posts(
        self,
        access_token: str,
        account_id: str,
        limit: int,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> List[NormalizedPost]:
        """
        Fetch the account's most recent posts.

        Raises
        ------
        AdapterFetchFailed – the provider was unreachable, answered with a
                             non-2xx status or sent an unusable payload
        """
        ...

    @abstractmethod
    def _normalize(self, item: Dict[str, Any]) -> Optional[NormalizedPost]:
        """Map one provider item; ``None`` drops an item with nothing to show."""
        ...

    async def revoke_token(
        self,
        access_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if unsupported or rejected.
        """
        return False

    # ── Helpers ─────────────────────────────────────────────────────────

    async def _get(
        self,
        url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """GET a feed endpoint; transport failures become ``AdapterFetchFailed``."""
        try:
            async with provider_client(client) as http:
                return await http.get(url, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s fetch failed: %s", self.platform.value, exc)
            raise AdapterFetchFailed(
                f"{self.display_name} is unreachable: {exc}",
                platform=self.platform.value,
            ) from exc

    def _normalize_items(self, items: Any) -> List[NormalizedPost]:
        """Normalize a provider item list, skipping entries that are not objects."""
        if items is None:
            return []
        if not isinstance(items, list):
            raise self._unexpected_payload()
        posts = []
        for item in items:
            if not isinstance(item, dict):
                logger.debug("Skipping non-object %s item: %r", self.platform.value, item)
                continue
            try:
                post = self._normalize(item)
            except (AttributeError, TypeError, ValueError) as exc:
                raise self._unexpected_payload() from exc
            if post is not None:
                posts.append(post)
        return posts

    def _unexpected_payload(self) -> AdapterFetchFailed:
        logger.warning("%s returned an unexpected payload", self.platform.value)
        return AdapterFetchFailed(f"Unexpected {self.display_name} response", platform=self.platform.value)

    def _fetch_failed(self, resp: httpx.Response, message: Optional[str]) -> AdapterFetchFailed:
        message = message or f"Failed to fetch {self.display_name} posts"
        logger.warning(
            "%s fetch failed: status=%s message=%s",
            self.platform.value,
            resp.status_code,
            message,
        )
        return AdapterFetchFailed(message, platform=self.platform.value, provider_status=resp.status_code)
