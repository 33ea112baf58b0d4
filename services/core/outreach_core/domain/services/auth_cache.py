"""Authentication cache for operator accounts.

Every task acquires its browser session here. The cached credential
bundle is tried first; any problem on that path falls through to a fresh
login, whose cookies then replace the stored bundle.

Usage:
    cache = AuthenticationCache(driver, store, settings)
    async with cache.acquire_session(account) as session:
        await session.navigate(profile_url)
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Optional, Protocol

from outreach_core.config import Settings, get_settings
from outreach_core.domain.errors import LoginFailed, NavigationTimeout, SessionUnconfirmed
from outreach_core.domain.services.credentials import Account, CredentialBundleStore
from outreach_core.infrastructure.browser import LaunchOptions
from outreach_core.providers.linkedin import descriptors

logger = logging.getLogger(__name__)

DEFAULT_CRITICAL_COOKIES = ("li_at", "li_rm", "JSESSIONID")

# Seconds
FIRST_NAVIGATION_TIMEOUT = 30.0
RETRY_NAVIGATION_TIMEOUT = 60.0
LANDMARK_SETTLE = 5.0
LOGIN_FORM_SETTLE = 3.0
LOGIN_SUBMIT_SETTLE = 8.0


# =============================================================================
# BUNDLE VALIDATION
# =============================================================================


@dataclass
class BundleValidation:
    """Per-cookie classification of a credential bundle."""

    missing: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    expiring: list[str] = field(default_factory=list)
    valid: list[str] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        if self.missing or self.expired:
            return False
        return bool(self.valid or self.expiring)


def validate_bundle(
    cookies: Optional[list[dict[str, Any]]],
    critical: Iterable[str] = DEFAULT_CRITICAL_COOKIES,
    warn_horizon: float = 3600,
    now: Optional[float] = None,
) -> BundleValidation:
    """Classify each critical cookie of a bundle.

    An ``expires`` of -1 or absent marks a session or persistent cookie,
    which counts as valid. Expiring within ``warn_horizon`` seconds is
    valid but reported in ``expiring``.
    """
    now = time.time() if now is None else now
    by_name = {c.get("name"): c for c in cookies or []}
    result = BundleValidation()

    for name in critical:
        cookie = by_name.get(name)
        if cookie is None:
            result.missing.append(name)
            continue

        expires = cookie.get("expires")
        if expires is None or expires == -1:
            result.valid.append(name)
            continue

        remaining = float(expires) - now
        if remaining <= 0:
            result.expired.append(name)
        elif remaining < warn_horizon:
            result.expiring.append(name)
        else:
            result.valid.append(name)

    return result


# =============================================================================
# OPERATOR CONFIRMATION
# =============================================================================


class OperatorConfirmation(Protocol):
    """Blocks until an operator has completed a manual challenge."""

    async def wait(self, account: Account, reason: str) -> None: ...


class ConsoleConfirmation:
    """Waits for Enter on the worker's console. No timeout."""

    async def wait(self, account: Account, reason: str) -> None:
        logger.warning(
            f"{reason} for {account.email}: complete it in the browser, then press Enter"
        )
        await asyncio.to_thread(input, "Press Enter once the challenge is complete... ")


# =============================================================================
# CACHE
# =============================================================================


class AuthenticationCache:
    """Acquires authenticated sessions for accounts."""

    def __init__(
        self,
        driver: Any,
        store: CredentialBundleStore,
        settings: Optional[Settings] = None,
        confirmation: Optional[OperatorConfirmation] = None,
        launch_options: Optional[LaunchOptions] = None,
        sleep=asyncio.sleep,
    ):
        self.driver = driver
        self.store = store
        self.settings = settings or get_settings()
        self.confirmation = confirmation or ConsoleConfirmation()
        self.launch_options = launch_options or LaunchOptions(
            headless=self.settings.headless,
            viewport_width=self.settings.viewport_width,
            viewport_height=self.settings.viewport_height,
        )
        self.sleep = sleep

    @asynccontextmanager
    async def acquire_session(
        self,
        account: Account,
        launch_options: Optional[LaunchOptions] = None,
    ) -> AsyncIterator[Any]:
        """Launch, authenticate and yield a session; always close it.

        Raises:
            LoginFailed: Credentials rejected with no recognisable challenge.
            SessionUnconfirmed: The post-login landmark never appeared.
        """
        session = await self.driver.launch(launch_options or self.launch_options)
        try:
            await self.authenticate(session, account)
            yield session
        finally:
            await session.close()

    async def authenticate(self, session: Any, account: Account) -> str:
        """Authenticate ``session``; returns ``"cached"`` or ``"fresh"``."""
        cookies = self.store.load(account.email)
        if cookies is not None:
            validation = validate_bundle(
                cookies,
                critical=self.settings.critical_cookies,
                warn_horizon=self.settings.cookie_warn_horizon_seconds,
            )
            if validation.expiring:
                logger.warning(
                    f"Cookies expiring within the hour for {account.email}: {validation.expiring}"
                )
            if validation.usable:
                if await self._try_cached(session, cookies, account):
                    logger.info(f"Authenticated {account.email} using stored cookies")
                    return "cached"
            else:
                logger.info(
                    f"Stored cookies unusable for {account.email} "
                    f"(missing={validation.missing}, expired={validation.expired})"
                )

        await self._fresh_login(session, account)
        return "fresh"

    async def _try_cached(self, session: Any, cookies: list[dict[str, Any]], account: Account) -> bool:
        feed = descriptors.feed_url(self.settings.platform_base_url)
        try:
            await session.set_cookies(cookies)

            try:
                await session.navigate(feed, timeout=FIRST_NAVIGATION_TIMEOUT)
            except NavigationTimeout:
                logger.warning(f"Feed navigation timed out for {account.email}, retrying")
                await session.navigate(feed, timeout=RETRY_NAVIGATION_TIMEOUT)

            await self.sleep(LANDMARK_SETTLE)
            if await session.find(descriptors.AUTH_LANDMARK) is not None:
                return True
            logger.info(f"Stored cookies rejected server-side for {account.email}")
        except Exception as e:
            logger.warning(f"Cached session failed for {account.email}: {e}")
        return False

    async def _fresh_login(self, session: Any, account: Account) -> None:
        logger.info(f"Performing fresh login for {account.email}")

        await session.navigate(descriptors.login_url(self.settings.platform_base_url))
        await self.sleep(LOGIN_FORM_SETTLE)

        username = await session.find(descriptors.LOGIN_USERNAME)
        password = await session.find(descriptors.LOGIN_PASSWORD)
        submit = await session.find(descriptors.LOGIN_SUBMIT)
        if username is None or password is None or submit is None:
            raise LoginFailed(f"Login form not found at {session.url}", target=account.email)

        await username.type(account.email)
        await password.type(account.secret)
        await submit.click()
        await self.sleep(LOGIN_SUBMIT_SETTLE)

        url = session.url
        if descriptors.AUTHENTICATED_URL_FRAGMENT not in url:
            body = (await session.body_text()).lower()
            if not any(marker in body for marker in descriptors.CHALLENGE_MARKERS):
                raise LoginFailed(f"Login failed. Current URL: {url}", target=account.email)

            await self.confirmation.wait(account, "Security challenge detected")
            if await session.find(descriptors.AUTH_LANDMARK) is None:
                raise SessionUnconfirmed(
                    "Authenticated landmark absent after security challenge",
                    target=account.email,
                )

        cookies = await session.cookies()
        self.store.save(account.email, cookies)
        logger.info(f"Fresh login succeeded for {account.email}")
