"""
SQLAlchemy ORM models for teams, platform configs, OAuth tokens, feeds
and the normalized post cache.

Types are kept portable (JSON with a JSONB variant on PostgreSQL) so the
same models run against SQLite in tests.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

JsonType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True)
    name = Column(String(128))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    members = relationship("User", back_populates="team")


class User(Base):
    __tablename__ = "users"

    user_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(128))
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    role = Column(String(16), nullable=False, default="member")  # "member" | "admin"
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    team = relationship("Team", back_populates="members")


class PlatformConfig(Base):
    __tablename__ = "social_platform_configs"

    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    platform = Column(String(32), primary_key=True)
    client_id = Column(Text)
    client_secret = Column(Text)  # encrypted; never returned to clients
    auth_url = Column(Text)
    token_url = Column(Text)
    scopes = Column(Text)
    redirect_uri = Column(Text)
    extra = Column(JsonType, nullable=False, default=dict)
    created_by = Column(Uuid)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class OAuthToken(Base):
    __tablename__ = "social_oauth_tokens"

    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    platform = Column(String(32), primary_key=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    expires_at = Column(DateTime(timezone=True))  # NULL = non-expiring
    meta = Column(JsonType, nullable=False, default=dict)
    connected_by_user_id = Column(Uuid)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)


class Feed(Base):
    __tablename__ = "social_feeds"
    __table_args__ = (
        UniqueConstraint("team_id", "platform", "account_id", name="social_feeds_team_account_uniq"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(32), nullable=False)
    account_id = Column(String(256), nullable=False)
    display_name = Column(String(256))
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class CachedPost(Base):
    __tablename__ = "social_cached_posts"

    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True)
    platform = Column(String(32), primary_key=True)
    account_id = Column(String(256), primary_key=True)
    post_id = Column(String(256), primary_key=True)
    payload = Column(JsonType, nullable=False, default=dict)
    published_at = Column(DateTime(timezone=True))
    fetched_at = Column(DateTime(timezone=True), default=_utcnow)
