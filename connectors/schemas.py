"""
Pydantic schemas shared by the adapters, services, routes and client.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, SecretStr


class Platform(str, Enum):
    YOUTUBE = "youtube"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"


# ═══════════════════════════════════════════════════════════════════════════════
# Posts
# ═══════════════════════════════════════════════════════════════════════════════


class Engagement(BaseModel):
    likes: int = 0
    comments: int = 0


class NormalizedPost(BaseModel):
    """Provider-agnostic post returned to clients and cached."""

    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    published_at: Optional[datetime] = None
    link: Optional[str] = None
    thumbnail: Optional[str] = None
    engagement: Optional[Engagement] = None
    raw: Optional[Any] = None
    is_error: bool = False


class FeedRefreshResult(BaseModel):
    feed_id: int
    platform: Platform
    account_id: str
    posts: List[NormalizedPost] = Field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Tokens
# ═══════════════════════════════════════════════════════════════════════════════


class TokenEnvelope(BaseModel):
    """Raw token response from a provider's token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[Union[str, List[str]]] = None

    model_config = {"extra": "allow"}


class SaveTokenRequest(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    expires_at: Optional[Union[int, float, str, datetime]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExchangeRequest(BaseModel):
    code: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)


class ConnectionStatus(BaseModel):
    platform: Platform
    connected: bool = False
    expired: bool = False
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    connected_by_user_id: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Platform configuration
# ═══════════════════════════════════════════════════════════════════════════════


class PublicPlatformConfig(BaseModel):
    """A team's platform config without the client secret."""

    platform: Platform
    client_id: Optional[str] = None
    auth_url: Optional[str] = None
    token_url: Optional[str] = None
    scopes: Optional[str] = None
    redirect_uri: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)
    has_client_secret: bool = False
    updated_at: Optional[datetime] = None


class PlatformConfigUpdate(BaseModel):
    """
    Save payload for a platform config.

    ``client_secret`` is write-only: ``None`` keeps the stored secret.
    Every other field replaces the stored value as given.
    """

    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    auth_url: Optional[str] = None
    token_url: Optional[str] = None
    scopes: Optional[str] = None
    redirect_uri: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# Feeds
# ═══════════════════════════════════════════════════════════════════════════════


class FeedCreate(BaseModel):
    platform: Platform
    account_id: str
    display_name: Optional[str] = None


class FeedOut(BaseModel):
    id: int
    platform: Platform
    account_id: str
    display_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
