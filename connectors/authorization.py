"""
Client-side OAuth authorization flow.

``begin_authorization`` issues a random state, remembers it together with
the platform in a single-slot ``PendingStateStore`` and returns the
provider consent URL.  ``handle_redirect`` takes the URL the provider sent
the user back to, checks the state, runs exchange-and-save and always
hands back a URL with the OAuth query parameters removed.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from config.settings import config
from connectors.client import SocialApiClient
from connectors.errors import AuthorizationDenied, SocialConnectorError, StateMismatch
from connectors.schemas import ConnectionStatus, Platform

logger = logging.getLogger(__name__)

OAUTH_QUERY_PARAMS = frozenset({"code", "state", "error", "error_description", "error_reason"})

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_state() -> str:
    return secrets.token_urlsafe(32)


def strip_oauth_params(url: str) -> str:
    """Remove the OAuth redirect parameters, keeping every other part of ``url``."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in OAUTH_QUERY_PARAMS]
    return urlunsplit(parts._replace(query=urlencode(query)))


@dataclass(frozen=True)
class PendingAuthorization:
    state: str
    platform: Platform
    redirect_uri: str
    expires_at: datetime


class PendingStateStore:
    """
    Holds at most one in-flight authorization.

    ``put`` overwrites whatever is pending; an expired entry reads as
    missing.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Clock = _utcnow) -> None:
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else config.oauth_state_ttl_seconds)
        self._clock = clock
        self._pending: Optional[PendingAuthorization] = None

    def put(self, state: str, platform: Platform, redirect_uri: str) -> PendingAuthorization:
        self._pending = PendingAuthorization(
            state=state,
            platform=platform,
            redirect_uri=redirect_uri,
            expires_at=self._clock() + self._ttl,
        )
        return self._pending

    def peek(self) -> Optional[PendingAuthorization]:
        if self._pending is not None and self._pending.expires_at <= self._clock():
            self._pending = None
        return self._pending

    def pop(self) -> Optional[PendingAuthorization]:
        pending = self.peek()
        self._pending = None
        return pending

    def clear(self) -> None:
        self._pending = None


@dataclass
class CallbackOutcome:
    """Result of processing one redirect URL."""

    status: str  # "connected" | "error" | "none"
    cleaned_url: str
    platform: Optional[Platform] = None
    error: Optional[SocialConnectorError] = None
    result: Optional[ConnectionStatus] = None

    @property
    def ok(self) -> bool:
        return self.status != "error"

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class AuthorizationFlow:
    """Drives the three-legged authorization for one client session."""

    def __init__(
        self,
        api: SocialApiClient,
        store: Optional[PendingStateStore] = None,
        redirect_uri: Optional[str] = None,
    ) -> None:
        self.api = api
        self.store = store or PendingStateStore()
        self.redirect_uri = redirect_uri or config.social_oauth_redirect_uri

    async def begin_authorization(self, platform: Union[Platform, str]) -> str:
        """
        Start an authorization and return the consent URL to navigate to.

        Raises ``MissingClientCredentials`` when no client id is configured.
        """
        platform = Platform(platform)
        state = generate_state()
        url = await self.api.authorization_url(platform, state, self.redirect_uri)
        self.store.put(state, platform, self.redirect_uri)
        logger.info("Authorization started for %s", platform.value)
        return url

    async def handle_redirect(self, url: str) -> CallbackOutcome:
        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
        cleaned = strip_oauth_params(url)

        if params.get("error"):
            pending = self.store.pop()
            message = params.get("error_description") or params.get("error_reason") or params["error"]
            logger.warning("Authorization denied by provider: %s", message)
            return CallbackOutcome(
                status="error",
                cleaned_url=cleaned,
                platform=pending.platform if pending else None,
                error=AuthorizationDenied(message),
            )

        code, state = params.get("code"), params.get("state")
        if not code or not state:
            return CallbackOutcome(status="none", cleaned_url=cleaned)

        pending = self.store.pop()
        if pending is None or not secrets.compare_digest(pending.state.encode(), state.encode()):
            logger.warning("OAuth state mismatch; authorization aborted")
            return CallbackOutcome(
                status="error",
                cleaned_url=cleaned,
                platform=pending.platform if pending else None,
                error=StateMismatch("OAuth state mismatch. Start the connection again."),
            )

        try:
            result = await self.api.exchange_and_save(pending.platform, code, pending.redirect_uri)
        except SocialConnectorError as exc:
            return CallbackOutcome(status="error", cleaned_url=cleaned, platform=pending.platform, error=exc)

        logger.info("Connected %s", pending.platform.value)
        return CallbackOutcome(status="connected", cleaned_url=cleaned, platform=pending.platform, result=result)
