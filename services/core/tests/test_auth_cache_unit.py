"""Unit tests for the authentication cache."""

import time
from unittest.mock import AsyncMock

import pytest

from browser_fakes import FakeDriver, FakeElement, FakeSession, RecordingSleep
from outreach_core.domain.errors import LoginFailed, SessionUnconfirmed
from outreach_core.domain.services.auth_cache import AuthenticationCache, validate_bundle
from outreach_core.domain.services.credentials import CredentialBundleStore
from outreach_core.providers.linkedin import descriptors as d

BASE = "https://www.linkedin.com"
FEED = d.feed_url(BASE)
LOGIN = d.login_url(BASE)
CHECKPOINT = f"{BASE}/checkpoint/challenge/"

FRESH_COOKIES = [
    {"name": "li_at", "value": "fresh", "expires": -1},
    {"name": "li_rm", "value": "fresh-rm", "expires": -1},
    {"name": "JSESSIONID", "value": "ajax:fresh"},
]


def stored_cookies(expires: float = -1) -> list[dict]:
    return [
        {"name": "li_at", "value": "stored", "expires": expires},
        {"name": "li_rm", "value": "stored-rm", "expires": -1},
        {"name": "JSESSIONID", "value": "ajax:stored", "expires": -1},
    ]


def login_pages(landing: str = FEED, feed_landmark: bool = True) -> dict:
    def submit(session):
        session.url = landing

    feed = {d.AUTH_LANDMARK: FakeElement()} if feed_landmark else {}
    return {
        LOGIN: {
            d.LOGIN_USERNAME: FakeElement(),
            d.LOGIN_PASSWORD: FakeElement(),
            d.LOGIN_SUBMIT: FakeElement("Sign in", on_click=submit),
        },
        FEED: feed,
    }


@pytest.fixture
def bundle_store(tmp_path):
    return CredentialBundleStore(str(tmp_path / "cookies"))


@pytest.fixture
def confirmation():
    confirmation = AsyncMock()
    confirmation.wait = AsyncMock()
    return confirmation


def make_cache(session, bundle_store, test_settings, confirmation=None):
    driver = FakeDriver(session)
    cache = AuthenticationCache(
        driver=driver,
        store=bundle_store,
        settings=test_settings,
        confirmation=confirmation,
        sleep=RecordingSleep(),
    )
    return cache, driver


class TestValidateBundle:
    def test_all_present_and_unexpired(self):
        result = validate_bundle(stored_cookies(expires=time.time() + 86400))
        assert result.usable
        assert result.valid == ["li_at", "li_rm", "JSESSIONID"]

    def test_missing_cookie(self):
        result = validate_bundle(stored_cookies()[:2])
        assert result.missing == ["JSESSIONID"]
        assert not result.usable

    def test_expired_cookie(self):
        result = validate_bundle(stored_cookies(expires=time.time() - 10))
        assert result.expired == ["li_at"]
        assert not result.usable

    def test_expiring_cookie_still_usable(self):
        result = validate_bundle(stored_cookies(expires=time.time() + 600))
        assert result.expiring == ["li_at"]
        assert result.usable

    def test_empty_bundle(self):
        assert not validate_bundle([]).usable
        assert not validate_bundle(None).usable


class TestAuthenticationCache:
    @pytest.mark.asyncio
    async def test_fresh_login_saves_cookies(self, bundle_store, test_settings, account):
        session = FakeSession(pages=login_pages(), cookies=FRESH_COOKIES)
        cache, driver = make_cache(session, bundle_store, test_settings)

        async with cache.acquire_session(account) as acquired:
            assert acquired is session

        login = session.pages[LOGIN]
        assert login[d.LOGIN_USERNAME].typed == [account.email]
        assert login[d.LOGIN_PASSWORD].typed == [account.secret]
        assert bundle_store.load(account.email) == FRESH_COOKIES
        assert session.closed is True
        assert driver.launches == 1

    @pytest.mark.asyncio
    async def test_valid_cached_bundle_skips_login(self, bundle_store, test_settings, account):
        bundle_store.save(account.email, stored_cookies())
        session = FakeSession(pages=login_pages())
        cache, _ = make_cache(session, bundle_store, test_settings)

        method = await cache.authenticate(session, account)

        assert method == "cached"
        assert session.cookies_set == stored_cookies()
        assert session.navigations == [FEED]

    @pytest.mark.asyncio
    async def test_expired_bundle_bypassed_without_injection(self, bundle_store, test_settings, account):
        bundle_store.save(account.email, stored_cookies(expires=time.time() - 60))
        session = FakeSession(pages=login_pages(), cookies=FRESH_COOKIES)
        cache, _ = make_cache(session, bundle_store, test_settings)

        method = await cache.authenticate(session, account)

        assert method == "fresh"
        assert session.cookies_set == []
        assert session.navigations[0] == LOGIN
        assert bundle_store.load(account.email) == FRESH_COOKIES

    @pytest.mark.asyncio
    async def test_rejected_cached_bundle_falls_back_to_login(self, bundle_store, test_settings, account):
        bundle_store.save(account.email, stored_cookies())
        pages = login_pages()
        session = FakeSession(pages=pages, cookies=FRESH_COOKIES)
        cache, _ = make_cache(session, bundle_store, test_settings)

        # No landmark on the first feed visit
        landmark = pages[FEED].pop(d.AUTH_LANDMARK)

        def submit(s):
            s.url = FEED
            pages[FEED][d.AUTH_LANDMARK] = landmark

        pages[LOGIN][d.LOGIN_SUBMIT].on_click = submit

        method = await cache.authenticate(session, account)

        assert method == "fresh"
        assert session.navigations == [FEED, LOGIN]
        assert bundle_store.load(account.email) == FRESH_COOKIES

    @pytest.mark.asyncio
    async def test_rejected_credentials_raise_login_failed(self, bundle_store, test_settings, account):
        session = FakeSession(pages=login_pages(landing=f"{BASE}/login?error=1"), body="Wrong password")
        cache, _ = make_cache(session, bundle_store, test_settings)

        with pytest.raises(LoginFailed) as exc_info:
            async with cache.acquire_session(account):
                pass

        assert exc_info.value.retryable is False
        assert "login?error=1" in exc_info.value.message
        assert session.closed is True
        assert bundle_store.load(account.email) is None

    @pytest.mark.asyncio
    async def test_challenge_waits_for_operator(self, bundle_store, test_settings, account, confirmation):
        pages = login_pages(landing=CHECKPOINT)
        pages[CHECKPOINT] = {d.AUTH_LANDMARK: FakeElement()}
        session = FakeSession(pages=pages, body="Let's do a quick Security Challenge", cookies=FRESH_COOKIES)
        cache, _ = make_cache(session, bundle_store, test_settings, confirmation)

        method = await cache.authenticate(session, account)

        assert method == "fresh"
        confirmation.wait.assert_awaited_once()
        assert bundle_store.load(account.email) == FRESH_COOKIES

    @pytest.mark.asyncio
    async def test_challenge_without_landmark_is_unconfirmed(
        self, bundle_store, test_settings, account, confirmation
    ):
        session = FakeSession(pages=login_pages(landing=CHECKPOINT), body="verification required")
        cache, _ = make_cache(session, bundle_store, test_settings, confirmation)

        with pytest.raises(SessionUnconfirmed) as exc_info:
            await cache.authenticate(session, account)

        assert exc_info.value.retryable is True
        assert bundle_store.load(account.email) is None

    @pytest.mark.asyncio
    async def test_missing_login_form(self, bundle_store, test_settings, account):
        session = FakeSession(pages={LOGIN: {}})
        cache, _ = make_cache(session, bundle_store, test_settings)

        with pytest.raises(LoginFailed, match="Login form not found"):
            await cache.authenticate(session, account)
