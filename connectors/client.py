"""
SocialApiClient — async client for the social connector API.

Wraps every client-facing endpoint and maps error responses back to the
``connectors.errors`` classes by their ``code`` field.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from connectors.errors import ERRORS_BY_CODE, SocialConnectorError
from connectors.schemas import (
    ConnectionStatus,
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

API_PREFIX = "/api/v1/social"


class SocialApiError(SocialConnectorError):
    """Error response without a known ``code`` (auth failures, validation, 5xx)."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class TokenSaveFailed(SocialConnectorError):
    """
    The code exchange succeeded but storing the token did not.

    ``envelope`` holds the provider's tokens so ``save_token`` can be
    retried without sending the user through consent again.
    """

    def __init__(self, envelope: TokenEnvelope, cause: Exception) -> None:
        super().__init__(f"Token obtained but not saved: {cause}")
        self.envelope = envelope
        self.cause = cause


def _error_from_response(resp: httpx.Response) -> SocialConnectorError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("error") or body.get("detail") or resp.reason_phrase or "Request failed"
    if not isinstance(message, str):
        message = str(message)
    error_cls = ERRORS_BY_CODE.get(body.get("code") or "")
    if error_cls is None:
        return SocialApiError(message, resp.status_code)
    return error_cls(message)


def envelope_metadata(envelope: TokenEnvelope) -> Dict[str, Any]:
    """Non-secret token attributes kept alongside the stored token."""
    meta: Dict[str, Any] = {}
    if envelope.token_type:
        meta["token_type"] = envelope.token_type
    if envelope.scope:
        meta["scope"] = envelope.scope
    return meta


class SocialApiClient:
    """Authenticated client for one caller's bearer token."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "SocialApiClient":
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient()
        resp = await self._client.request(
            method,
            f"{self._base_url}{API_PREFIX}{path}",
            headers=self._headers,
            **kwargs,
        )
        if not resp.is_success:
            error = _error_from_response(resp)
            logger.debug("%s %s failed: %s %s", method, path, resp.status_code, error.message)
            raise error
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ── Configuration ───────────────────────────────────────────────────

    async def list_providers(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/providers")

    async def get_platform_config(self) -> Dict[str, PublicPlatformConfig]:
        data = await self._request("GET", "/config")
        return {key: PublicPlatformConfig.model_validate(value) for key, value in data.items()}

    async def save_platform_config(
        self,
        platform: Union[Platform, str],
        update: PlatformConfigUpdate,
    ) -> PublicPlatformConfig:
        body = update.model_dump(mode="json")
        if update.client_secret is not None:
            body["client_secret"] = update.client_secret.get_secret_value()
        data = await self._request("PUT", f"/config/{Platform(platform).value}", json=body)
        return PublicPlatformConfig.model_validate(data)

    async def connection_status(self) -> Dict[str, ConnectionStatus]:
        data = await self._request("GET", "/connections")
        return {key: ConnectionStatus.model_validate(value) for key, value in data.items()}

    # ── OAuth ───────────────────────────────────────────────────────────

    async def authorization_url(
        self,
        platform: Union[Platform, str],
        state: str,
        redirect_uri: Optional[str] = None,
    ) -> str:
        params = {"state": state}
        if redirect_uri:
            params["redirect_uri"] = redirect_uri
        data = await self._request("GET", f"/{Platform(platform).value}/authorize", params=params)
        return data["authorization_url"]

    async def exchange(self, platform: Union[Platform, str], code: str, redirect_uri: str) -> TokenEnvelope:
        data = await self._request(
            "POST",
            f"/{Platform(platform).value}/exchange",
            json={"code": code, "redirect_uri": redirect_uri},
        )
        return TokenEnvelope.model_validate(data)

    async def save_token(self, platform: Union[Platform, str], payload: SaveTokenRequest) -> ConnectionStatus:
        data = await self._request(
            "POST",
            f"/{Platform(platform).value}/token",
            json=payload.model_dump(mode="json"),
        )
        return ConnectionStatus.model_validate(data)

    async def exchange_and_save(
        self,
        platform: Union[Platform, str],
        code: str,
        redirect_uri: str,
    ) -> ConnectionStatus:
        """
        Exchange the code, then store the tokens.

        Raises ``TokenSaveFailed`` (carrying the envelope) when only the
        second step fails.
        """
        envelope = await self.exchange(platform, code, redirect_uri)
        payload = SaveTokenRequest(
            access_token=envelope.access_token,
            refresh_token=envelope.refresh_token,
            expires_in=envelope.expires_in,
            metadata=envelope_metadata(envelope),
        )
        try:
            return await self.save_token(platform, payload)
        except (SocialConnectorError, httpx.HTTPError) as exc:
            logger.warning("Saving %s token failed after a successful exchange: %s", Platform(platform).value, exc)
            raise TokenSaveFailed(envelope, exc) from exc

    async def disconnect(self, platform: Union[Platform, str]) -> Dict[str, int]:
        return await self._request("DELETE", f"/{Platform(platform).value}/connection")

    # ── Feeds ───────────────────────────────────────────────────────────

    async def list_feeds(self) -> List[FeedOut]:
        data = await self._request("GET", "/feeds")
        return [FeedOut.model_validate(item) for item in data]

    async def add_feed(
        self,
        platform: Union[Platform, str],
        account_id: str,
        display_name: Optional[str] = None,
    ) -> FeedOut:
        data = await self._request(
            "POST",
            "/feeds",
            json={"platform": Platform(platform).value, "account_id": account_id, "display_name": display_name},
        )
        return FeedOut.model_validate(data)

    async def remove_feed(self, feed_id: int) -> None:
        await self._request("DELETE", f"/feeds/{feed_id}")

    async def refresh_feed(self, feed_id: int, limit: Optional[int] = None) -> List[NormalizedPost]:
        params = {"limit": limit} if limit is not None else None
        data = await self._request("POST", f"/feeds/{feed_id}/refresh", params=params)
        return [NormalizedPost.model_validate(item) for item in data]

    async def refresh_all_feeds(self, limit: Optional[int] = None) -> List[FeedRefreshResult]:
        params = {"limit": limit} if limit is not None else None
        data = await self._request("POST", "/feeds/refresh", params=params)
        return [FeedRefreshResult.model_validate(item) for item in data]

    async def cached_posts(self, feed_id: int) -> List[NormalizedPost]:
        data = await self._request("GET", f"/feeds/{feed_id}/posts")
        return [NormalizedPost.model_validate(item) for item in data]
