"""
Tests for the client-side authorization flow and pending-state handling.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from connectors.authorization import (
    AuthorizationFlow,
    PendingStateStore,
    generate_state,
    strip_oauth_params,
)
from connectors.client import SocialApiClient
from connectors.errors import AuthorizationDenied, MissingClientCredentials, StateMismatch, TokenExchangeFailed
from connectors.schemas import ConnectionStatus, Platform

APP_URL = "http://localhost:3000/settings"


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def _flow(store=None):
    api = AsyncMock(spec=SocialApiClient)
    api.authorization_url.return_value = "https://provider.test/auth?state=whatever"
    api.exchange_and_save.return_value = ConnectionStatus(platform=Platform.YOUTUBE, connected=True)
    return AuthorizationFlow(api, store=store or PendingStateStore(ttl_seconds=600), redirect_uri=APP_URL), api


class TestPendingStateStore:
    def test_single_slot_overwrite(self):
        store = PendingStateStore(ttl_seconds=60)
        store.put("first", Platform.YOUTUBE, APP_URL)
        store.put("second", Platform.LINKEDIN, APP_URL)
        pending = store.pop()
        assert (pending.state, pending.platform) == ("second", Platform.LINKEDIN)
        assert store.pop() is None

    def test_expiry(self):
        clock = FakeClock()
        store = PendingStateStore(ttl_seconds=60, clock=clock)
        store.put("s", Platform.YOUTUBE, APP_URL)
        clock.now += timedelta(seconds=61)
        assert store.peek() is None

    def test_states_are_random(self):
        assert generate_state() != generate_state()
        assert len(generate_state()) >= 32


class TestStripOAuthParams:
    def test_removes_only_oauth_params(self):
        url = f"{APP_URL}?tab=social&code=abc&state=xyz&error_reason=x"
        assert strip_oauth_params(url) == f"{APP_URL}?tab=social"

    def test_drops_empty_query(self):
        assert strip_oauth_params(f"{APP_URL}?code=abc&state=xyz") == APP_URL


class TestBeginAuthorization:
    @pytest.mark.asyncio
    async def test_stores_state_with_platform(self):
        flow, api = _flow()
        url = await flow.begin_authorization("youtube")

        assert url == "https://provider.test/auth?state=whatever"
        pending = flow.store.peek()
        assert pending.platform == Platform.YOUTUBE
        api.authorization_url.assert_awaited_once_with(Platform.YOUTUBE, pending.state, APP_URL)

    @pytest.mark.asyncio
    async def test_missing_credentials_leaves_nothing_pending(self):
        flow, api = _flow()
        api.authorization_url.side_effect = MissingClientCredentials("Missing client credentials for linkedin.")
        with pytest.raises(MissingClientCredentials):
            await flow.begin_authorization(Platform.LINKEDIN)
        assert flow.store.peek() is None


class TestHandleRedirect:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("platform", list(Platform))
    async def test_state_mismatch_never_exchanges(self, platform):
        flow, api = _flow()
        await flow.begin_authorization(platform)

        outcome = await flow.handle_redirect(f"{APP_URL}?code=abc&state={generate_state()}")

        assert outcome.status == "error"
        assert isinstance(outcome.error, StateMismatch)
        assert outcome.cleaned_url == APP_URL
        api.exchange_and_save.assert_not_awaited()
        with pytest.raises(StateMismatch):
            outcome.raise_for_error()

    @pytest.mark.asyncio
    async def test_success(self):
        flow, api = _flow()
        await flow.begin_authorization(Platform.YOUTUBE)
        state = flow.store.peek().state

        outcome = await flow.handle_redirect(f"{APP_URL}?code=abc&state={state}")

        assert outcome.status == "connected"
        assert outcome.platform == Platform.YOUTUBE
        assert outcome.result.connected is True
        assert outcome.cleaned_url == APP_URL
        api.exchange_and_save.assert_awaited_once_with(Platform.YOUTUBE, "abc", APP_URL)
        assert flow.store.peek() is None

    @pytest.mark.asyncio
    async def test_replayed_redirect_is_rejected(self):
        flow, api = _flow()
        await flow.begin_authorization(Platform.YOUTUBE)
        redirect = f"{APP_URL}?code=abc&state={flow.store.peek().state}"

        await flow.handle_redirect(redirect)
        second = await flow.handle_redirect(redirect)

        assert isinstance(second.error, StateMismatch)
        assert api.exchange_and_save.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_state_is_a_mismatch(self):
        clock = FakeClock()
        flow, api = _flow(PendingStateStore(ttl_seconds=600, clock=clock))
        await flow.begin_authorization(Platform.FACEBOOK)
        state = flow.store.peek().state
        clock.now += timedelta(minutes=11)

        outcome = await flow.handle_redirect(f"{APP_URL}?code=abc&state={state}")
        assert isinstance(outcome.error, StateMismatch)
        api.exchange_and_save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_error_clears_pending(self):
        flow, api = _flow()
        await flow.begin_authorization(Platform.INSTAGRAM)

        outcome = await flow.handle_redirect(
            f"{APP_URL}?error=access_denied&error_description=User+cancelled&state=x"
        )

        assert isinstance(outcome.error, AuthorizationDenied)
        assert outcome.error.message == "User cancelled"
        assert outcome.platform == Platform.INSTAGRAM
        assert outcome.cleaned_url == APP_URL
        assert flow.store.peek() is None
        api.exchange_and_save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exchange_failure_is_reported(self):
        flow, api = _flow()
        api.exchange_and_save.side_effect = TokenExchangeFailed("invalid_grant", provider_status=400)
        await flow.begin_authorization(Platform.LINKEDIN)

        outcome = await flow.handle_redirect(f"{APP_URL}?code=abc&state={flow.store.peek().state}")
        assert outcome.status == "error"
        assert isinstance(outcome.error, TokenExchangeFailed)
        assert outcome.cleaned_url == APP_URL

    @pytest.mark.asyncio
    async def test_plain_url_is_untouched(self):
        flow, api = _flow()
        outcome = await flow.handle_redirect(f"{APP_URL}?tab=social")
        assert outcome.status == "none"
        assert outcome.ok
        assert outcome.cleaned_url == f"{APP_URL}?tab=social"

    @pytest.mark.asyncio
    async def test_non_ascii_state_is_a_mismatch(self):
        flow, api = _flow()
        await flow.begin_authorization(Platform.YOUTUBE)

        outcome = await flow.handle_redirect(f"{APP_URL}?code=abc&state=%C3%A9-forged")

        assert isinstance(outcome.error, StateMismatch)
        assert outcome.cleaned_url == APP_URL
        api.exchange_and_save.assert_not_awaited()
