"""
Credential store — per-team OAuth application registration per platform.

The client secret is write-only: it is encrypted on save, never part of
the public view, and only read back by ``resolve_client_credentials``
inside the privileged exchange path.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.models import CallerIdentity
from config.settings import config
from connectors.encryption import decrypt_secret, encrypt_secret
from connectors.errors import MissingClientCredentials, NotTeamAdmin
from connectors.registry import get_adapter
from connectors.schemas import Platform, PlatformConfigUpdate, PublicPlatformConfig
from database.helpers import as_utc, upsert_statement
from database.models import PlatformConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientCredentials:
    """Resolved OAuth client for one (team, platform); privileged only."""

    client_id: str
    client_secret: str
    token_url: str
    scopes: str
    redirect_uri: str

    def __repr__(self) -> str:
        return f"ClientCredentials(client_id={self.client_id!r}, token_url={self.token_url!r})"


async def _load_config(session: AsyncSession, team_id: int, platform: Platform) -> Optional[PlatformConfig]:
    result = await session.execute(
        select(PlatformConfig).where(
            PlatformConfig.team_id == team_id,
            PlatformConfig.platform == platform.value,
        )
    )
    return result.scalar_one_or_none()


def _public_view(platform: Platform, row: Optional[PlatformConfig]) -> PublicPlatformConfig:
    if row is None:
        return PublicPlatformConfig(platform=platform)
    return PublicPlatformConfig(
        platform=platform,
        client_id=row.client_id,
        auth_url=row.auth_url,
        token_url=row.token_url,
        scopes=row.scopes,
        redirect_uri=row.redirect_uri,
        extra=row.extra or {},
        has_client_secret=bool(row.client_secret),
        updated_at=as_utc(row.updated_at),
    )


async def get_platform_configs(session: AsyncSession, team_id: int) -> Dict[str, PublicPlatformConfig]:
    """Public config for every platform; unconfigured ones come back empty."""
    result = await session.execute(select(PlatformConfig).where(PlatformConfig.team_id == team_id))
    rows = {row.platform: row for row in result.scalars().all()}
    return {p.value: _public_view(p, rows.get(p.value)) for p in Platform}


async def save_platform_config(
    session: AsyncSession,
    caller: CallerIdentity,
    platform: Platform,
    update: PlatformConfigUpdate,
) -> PublicPlatformConfig:
    """
    Create or update the caller's team config for ``platform``.

    Non-secret fields are replaced as given; ``client_secret=None`` keeps
    the stored secret.
    """
    if not caller.is_admin:
        raise NotTeamAdmin("Only team administrators can change platform configuration")

    now = datetime.now(timezone.utc)
    values = {
        "team_id": caller.team_id,
        "platform": platform.value,
        "client_id": update.client_id,
        "auth_url": update.auth_url,
        "token_url": update.token_url,
        "scopes": update.scopes,
        "redirect_uri": update.redirect_uri,
        "extra": update.extra or {},
        "created_by": uuid.UUID(caller.user_id),
        "updated_at": now,
    }
    update_columns = ["client_id", "auth_url", "token_url", "scopes", "redirect_uri", "extra", "updated_at"]
    if update.client_secret is not None:
        values["client_secret"] = encrypt_secret(update.client_secret.get_secret_value())
        update_columns.append("client_secret")

    await session.execute(
        upsert_statement(
            session,
            PlatformConfig,
            values,
            conflict_columns=["team_id", "platform"],
            update_columns=update_columns,
        )
    )
    await session.flush()
    logger.info(
        "Saved %s config for team %s (secret %s)",
        platform.value,
        caller.team_id,
        "updated" if update.client_secret is not None else "unchanged",
    )

    row = await _load_config(session, caller.team_id, platform)
    if row is not None:
        await session.refresh(row)
    return _public_view(platform, row)


async def build_authorization_url(
    session: AsyncSession,
    team_id: int,
    platform: Platform,
    state: str,
    redirect_uri: Optional[str] = None,
) -> str:
    """
    Provider consent URL for the team's OAuth client.

    Only the client id is needed here; scopes, endpoint and redirect URI
    fall back to the adapter defaults and settings.

    Raises
    ------
    MissingClientCredentials – no client id from config or environment
    """
    adapter = get_adapter(platform)
    row = await _load_config(session, team_id, platform)
    client_id = (row.client_id if row else None) or config.platform_env_credentials(platform.value)["client_id"]
    if not client_id:
        raise MissingClientCredentials(
            f"Missing client credentials for {platform.value}. Configure them in team settings."
        )
    return adapter.build_authorize_url(
        client_id=client_id,
        redirect_uri=redirect_uri or (row.redirect_uri if row else None) or config.social_oauth_redirect_uri,
        state=state,
        scopes=row.scopes if row else None,
        auth_url=row.auth_url if row else None,
    )


async def resolve_client_credentials(
    session: AsyncSession,
    team_id: int,
    platform: Platform,
) -> ClientCredentials:
    """
    Resolve the OAuth client used for a token exchange.

    The team config wins for every field it sets; empty fields fall back
    to the environment, and the token URL finally to the adapter default.

    Raises
    ------
    MissingClientCredentials – neither source has a client id and secret
    """
    adapter = get_adapter(platform)
    row = await _load_config(session, team_id, platform)
    env = config.platform_env_credentials(platform.value)

    client_id = (row.client_id if row else None) or env["client_id"]
    client_secret = (decrypt_secret(row.client_secret) if row else None) or env["client_secret"]
    if not client_id or not client_secret:
        raise MissingClientCredentials(
            f"Missing client credentials for {platform.value}. Configure them in team settings."
        )

    return ClientCredentials(
        client_id=client_id,
        client_secret=client_secret,
        token_url=(row.token_url if row else None) or env["token_url"] or adapter.default_token_url,
        scopes=(row.scopes if row else None) or adapter.default_scopes,
        redirect_uri=(row.redirect_uri if row else None) or config.social_oauth_redirect_uri,
    )
