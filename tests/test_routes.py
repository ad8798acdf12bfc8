"""
API tests through SocialApiClient against the ASGI app.
"""

from contextlib import asynccontextmanager

import httpx
import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy import select

from auth.jwt import create_token
from connectors import base, exchange
from connectors.client import SocialApiClient, SocialApiError, TokenSaveFailed
from connectors.errors import (
    AdapterFetchFailed,
    FeedNotFound,
    InvalidTokenPayload,
    NotConnected,
    NotTeamAdmin,
    NotTeamMember,
    TokenExchangeFailed,
    TokenExpired,
)
from connectors.registry import AdapterRegistry
from connectors.schemas import NormalizedPost, Platform, PlatformConfigUpdate, SaveTokenRequest
from connectors.youtube import YouTubeAdapter
from database.models import CachedPost, OAuthToken
from database.session import get_db_session
from main import create_app
from conftest import ADMIN_ID, LONER_ID, MEMBER_ID, OTHER_TEAM_ID


class CannedYouTube(YouTubeAdapter):
    async def fetch_posts(self, access_token, account_id, limit, *, client=None):
        return [NormalizedPost(id="v1", title="Hello", link="https://www.youtube.com/watch?v=v1")]


def _provider_stub(payload, status_code=200):
    """Replacement for ``provider_client`` answering every call with ``payload``."""

    @asynccontextmanager
    async def stub(client=None):
        transport = httpx.MockTransport(lambda request: httpx.Response(status_code, json=payload))
        async with httpx.AsyncClient(transport=transport) as own:
            yield own

    return stub


@pytest_asyncio.fixture
async def app(session_factory):
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    return app


@pytest_asyncio.fixture
async def api_for(app):
    clients = []

    def make(user_id) -> SocialApiClient:
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
        clients.append(http)
        return SocialApiClient("http://testserver", create_token(str(user_id)), client=http)

    yield make
    for http in clients:
        await http.aclose()


class TestConfigRoutes:
    @pytest.mark.asyncio
    async def test_providers_without_auth(self, app):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as http:
            resp = await http.get("/api/v1/social/providers")
        assert resp.status_code == 200
        assert {p["provider"] for p in resp.json()} == {"youtube", "facebook", "instagram", "linkedin"}

    @pytest.mark.asyncio
    async def test_admin_saves_member_reads(self, api_for):
        admin_api, member_api = api_for(ADMIN_ID), api_for(MEMBER_ID)
        saved = await admin_api.save_platform_config(
            Platform.YOUTUBE, PlatformConfigUpdate(client_id="cid", client_secret=SecretStr("top-secret"))
        )
        assert saved.has_client_secret is True

        configs = await member_api.get_platform_config()
        assert configs["youtube"].client_id == "cid"
        assert configs["youtube"].has_client_secret is True

        with pytest.raises(NotTeamAdmin):
            await member_api.save_platform_config(Platform.YOUTUBE, PlatformConfigUpdate(client_id="hijack"))

    @pytest.mark.asyncio
    async def test_secret_never_returned(self, app, api_for):
        await api_for(ADMIN_ID).save_platform_config(
            Platform.LINKEDIN, PlatformConfigUpdate(client_id="li", client_secret=SecretStr("top-secret"))
        )
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as http:
            resp = await http.get(
                "/api/v1/social/config",
                headers={"Authorization": f"Bearer {create_token(str(ADMIN_ID))}"},
            )
        assert "top-secret" not in resp.text

    @pytest.mark.asyncio
    async def test_missing_or_bad_token(self, app):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as http:
            anonymous = await http.get("/api/v1/social/config")
            forged = await http.get("/api/v1/social/config", headers={"Authorization": "Bearer abc.def"})
        assert anonymous.status_code in (401, 403)
        assert forged.status_code == 401

    @pytest.mark.asyncio
    async def test_user_without_team(self, api_for):
        with pytest.raises(NotTeamMember):
            await api_for(LONER_ID).list_feeds()

    @pytest.mark.asyncio
    async def test_authorization_url(self, api_for):
        admin_api = api_for(ADMIN_ID)
        await admin_api.save_platform_config(Platform.FACEBOOK, PlatformConfigUpdate(client_id="meta-app"))
        url = await admin_api.authorization_url(Platform.FACEBOOK, "state-123456", "http://app/cb")
        assert url.startswith("https://www.facebook.com/v18.0/dialog/oauth?")
        assert "client_id=meta-app" in url
        assert "state=state-123456" in url


class TestConnectionRoutes:
    @pytest.mark.asyncio
    async def test_exchange_and_save(self, api_for, session_factory, monkeypatch):
        admin_api = api_for(ADMIN_ID)
        await admin_api.save_platform_config(
            Platform.YOUTUBE, PlatformConfigUpdate(client_id="cid", client_secret=SecretStr("sec"))
        )
        monkeypatch.setattr(
            exchange,
            "provider_client",
            _provider_stub({"access_token": "at-1", "expires_in": 3600, "token_type": "Bearer"}),
        )

        status = await admin_api.exchange_and_save(Platform.YOUTUBE, "code-1", "http://app/cb")
        assert status.connected is True
        assert status.expires_at is not None

        connections = await api_for(MEMBER_ID).connection_status()
        assert connections["youtube"].connected is True
        assert connections["facebook"].connected is False

        async with session_factory() as session:
            row = (await session.execute(select(OAuthToken))).scalar_one()
        assert row.team_id == 1
        assert row.meta == {"token_type": "Bearer"}

    @pytest.mark.asyncio
    async def test_exchange_failure_maps_to_error(self, api_for, monkeypatch):
        admin_api = api_for(ADMIN_ID)
        await admin_api.save_platform_config(
            Platform.YOUTUBE, PlatformConfigUpdate(client_id="cid", client_secret=SecretStr("sec"))
        )
        monkeypatch.setattr(exchange, "provider_client", _provider_stub({"error": "invalid_grant"}, 400))

        with pytest.raises(TokenExchangeFailed, match="invalid_grant"):
            await admin_api.exchange_and_save(Platform.YOUTUBE, "bad-code", "http://app/cb")

    @pytest.mark.asyncio
    async def test_save_failure_keeps_envelope(self, api_for, monkeypatch):
        admin_api = api_for(ADMIN_ID)
        await admin_api.save_platform_config(
            Platform.YOUTUBE, PlatformConfigUpdate(client_id="cid", client_secret=SecretStr("sec"))
        )
        monkeypatch.setattr(
            exchange,
            "provider_client",
            _provider_stub({"access_token": "at-1"}),
        )

        async def failing_save(platform, payload):
            raise SocialApiError("database unavailable", 500)

        monkeypatch.setattr(admin_api, "save_token", failing_save)
        with pytest.raises(TokenSaveFailed) as exc_info:
            await admin_api.exchange_and_save(Platform.YOUTUBE, "code-1", "http://app/cb")
        assert exc_info.value.envelope.access_token == "at-1"

    @pytest.mark.asyncio
    async def test_invalid_platform(self, api_for):
        with pytest.raises(SocialApiError) as exc_info:
            await api_for(ADMIN_ID)._request("DELETE", "/myspace/connection")
        assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, api_for):
        admin_api = api_for(ADMIN_ID)
        assert await admin_api.disconnect(Platform.LINKEDIN) == {"tokens": 0, "feeds": 0}


class TestFeedRoutes:
    @pytest.mark.asyncio
    async def test_feed_lifecycle(self, api_for, session_factory):
        AdapterRegistry().register(CannedYouTube())
        member_api = api_for(MEMBER_ID)

        with pytest.raises(NotConnected):
            await member_api.add_feed(Platform.YOUTUBE, "UC123")

        await member_api.save_token(Platform.YOUTUBE, SaveTokenRequest(access_token="tok"))
        feed = await member_api.add_feed(Platform.YOUTUBE, "UC123", "Main channel")
        assert feed.display_name == "Main channel"
        assert [f.id for f in await member_api.list_feeds()] == [feed.id]

        posts = await member_api.refresh_feed(feed.id, limit=3)
        assert [p.id for p in posts] == ["v1"]
        cached = await member_api.cached_posts(feed.id)
        assert [p.link for p in cached] == ["https://www.youtube.com/watch?v=v1"]

        results = await member_api.refresh_all_feeds()
        assert results[0].feed_id == feed.id and results[0].error is None

        async with session_factory() as session:
            rows = (await session.execute(select(CachedPost))).scalars().all()
        assert len(rows) == 1

        with pytest.raises(FeedNotFound):
            await api_for(OTHER_TEAM_ID).remove_feed(feed.id)

        await member_api.remove_feed(feed.id)
        assert await member_api.list_feeds() == []

    @pytest.mark.asyncio
    async def test_refresh_expired_returns_conflict(self, api_for):
        AdapterRegistry().register(CannedYouTube())
        member_api = api_for(MEMBER_ID)
        await member_api.save_token(Platform.YOUTUBE, SaveTokenRequest(access_token="tok"))
        feed = await member_api.add_feed(Platform.YOUTUBE, "UC1")
        await member_api.save_token(Platform.YOUTUBE, SaveTokenRequest(access_token="tok", expires_at=1000))

        with pytest.raises(TokenExpired) as exc_info:
            await member_api.refresh_feed(feed.id)
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_unreachable_provider_is_structured(self, api_for, monkeypatch):
        def unreachable(request):
            raise httpx.ConnectError("dns failure")

        @asynccontextmanager
        async def offline_client(client=None):
            async with httpx.AsyncClient(transport=httpx.MockTransport(unreachable)) as own:
                yield own

        monkeypatch.setattr(base, "provider_client", offline_client)
        member_api = api_for(MEMBER_ID)
        await member_api.save_token(Platform.YOUTUBE, SaveTokenRequest(access_token="tok"))
        feed = await member_api.add_feed(Platform.YOUTUBE, "UC1")

        with pytest.raises(AdapterFetchFailed) as exc_info:
            await member_api.refresh_feed(feed.id)
        assert exc_info.value.status_code == 502
        assert await member_api.cached_posts(feed.id) == []

    @pytest.mark.asyncio
    async def test_out_of_range_expiry_is_rejected(self, api_for):
        with pytest.raises(InvalidTokenPayload):
            await api_for(ADMIN_ID).save_token(
                Platform.YOUTUBE, SaveTokenRequest(access_token="tok", expires_in=10**20)
            )
