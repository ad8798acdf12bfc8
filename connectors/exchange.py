"""
Token exchange — trade an authorization code for tokens (privileged).

The exchange returns the provider's token envelope to the caller and does
not persist it; saving is the separate ``token_manager.save_token`` step.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CallerIdentity
from connectors.base import provider_client, response_json
from connectors.credentials import resolve_client_credentials
from connectors.errors import TokenExchangeFailed
from connectors.registry import get_adapter
from connectors.schemas import Platform, TokenEnvelope

logger = logging.getLogger(__name__)


def _provider_error_message(data: Dict[str, Any], status_code: int) -> str:
    """Pick the most descriptive error the provider returned."""
    error = data.get("error")
    return (
        data.get("error_description")
        or (error.get("message") if isinstance(error, dict) else None)
        or (error if isinstance(error, str) else None)
        or f"Token exchange failed with status {status_code}"
    )


def _scrub(message: str, secret: str) -> str:
    return message.replace(secret, "***") if secret else message


async def exchange_code(
    session: AsyncSession,
    caller: CallerIdentity,
    platform: Platform,
    code: str,
    redirect_uri: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> TokenEnvelope:
    """
    Exchange ``code`` at the provider's token endpoint for the caller's team.

    Raises
    ------
    MissingClientCredentials – no client id / secret from config or environment
    TokenExchangeFailed      – provider rejected the code, or no access token came back
    """
    adapter = get_adapter(platform)
    creds = await resolve_client_credentials(session, caller.team_id, platform)
    token_req = adapter.build_token_request(
        code=code,
        client_id=creds.client_id,
        client_secret=creds.client_secret,
        redirect_uri=redirect_uri,
        token_url=creds.token_url,
    )

    async with provider_client(client) as http:
        try:
            resp = await http.post(
                token_req.url,
                data=token_req.data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("%s token endpoint unreachable: %s", platform.value, exc)
            raise TokenExchangeFailed(
                _scrub(f"Token endpoint unreachable: {exc}", creds.client_secret)
            ) from exc

    data = response_json(resp)
    if not resp.is_success:
        message = _scrub(_provider_error_message(data, resp.status_code), creds.client_secret)
        logger.warning(
            "%s token exchange failed for team %s: status=%s message=%s",
            platform.value,
            caller.team_id,
            resp.status_code,
            message,
        )
        raise TokenExchangeFailed(message, provider_status=resp.status_code)

    if not data.get("access_token"):
        raise TokenExchangeFailed(
            "OAuth token exchange response missing access_token",
            provider_status=resp.status_code,
        )

    logger.info("%s code exchanged for team %s", platform.value, caller.team_id)
    return TokenEnvelope.model_validate(data)
