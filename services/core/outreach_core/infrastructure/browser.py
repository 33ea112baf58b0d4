"""Browser session driver built on Playwright.

Exposes the capability surface the task executors need (navigate,
locate, read, click, type, screenshot, cookies, close) and nothing
else: no retries, no pacing, no policy. Failures surface as exceptions;
timeouts on navigation are translated to ``NavigationTimeout``.

Usage:
    driver = PlaywrightDriver()
    session = await driver.launch(LaunchOptions(headless=True))
    try:
        await session.navigate("https://www.linkedin.com/feed/")
        search = await session.find('[aria-label="Search"]')
    finally:
        await session.close()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from outreach_core.domain.errors import NavigationTimeout

logger = logging.getLogger(__name__)

# Keys Playwright accepts in add_cookies()
COOKIE_FIELDS = {"name", "value", "url", "domain", "path", "expires", "httpOnly", "secure", "sameSite"}


@dataclass
class LaunchOptions:
    """Options for launching a browser session."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800
    record_video_dir: Optional[str] = None
    args: list[str] = field(
        default_factory=lambda: ["--no-sandbox", "--disable-setuid-sandbox"]
    )


class Element:
    """A located element on the page."""

    def __init__(self, handle: Any):
        self._handle = handle

    async def click(self) -> None:
        await self._handle.click()

    async def triple_click(self) -> None:
        await self._handle.click(click_count=3)

    async def type(self, text: str) -> None:
        await self._handle.type(text)

    async def read_text(self) -> str:
        text = await self._handle.text_content()
        return (text or "").strip()

    async def inner_text(self) -> str:
        text = await self._handle.inner_text()
        return (text or "").strip()

    async def is_enabled(self) -> bool:
        return await self._handle.is_enabled()

    async def attribute(self, name: str) -> Optional[str]:
        return await self._handle.get_attribute(name)

    async def find(self, descriptor: str) -> Optional["Element"]:
        handle = await self._handle.query_selector(descriptor)
        return Element(handle) if handle else None


class BrowserSession:
    """One browser context with a single page."""

    def __init__(self, playwright: Any, browser: Any, context: Any, page: Any):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self.page = page
        self._closed = False

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(
        self,
        url: str,
        wait_until: str = "load",
        timeout: float = 30.0,
    ) -> None:
        """Navigate to ``url``.

        Raises:
            NavigationTimeout: If the page does not reach ``wait_until``
                within ``timeout`` seconds.
        """
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timed out loading {url}: {e}", target=url)

    async def find(self, descriptor: str) -> Optional[Element]:
        handle = await self.page.query_selector(descriptor)
        return Element(handle) if handle else None

    async def find_all(self, descriptor: str) -> list[Element]:
        handles = await self.page.query_selector_all(descriptor)
        return [Element(h) for h in handles]

    async def wait_for(
        self,
        descriptor: str,
        timeout: float = 10.0,
        visible: bool = True,
    ) -> Optional[Element]:
        """Wait for an element; returns None when it never appears."""
        state = "visible" if visible else "attached"
        try:
            handle = await self.page.wait_for_selector(
                descriptor, state=state, timeout=timeout * 1000
            )
        except PlaywrightTimeoutError:
            return None
        return Element(handle) if handle else None

    async def wait_for_url(self, fragment: str, timeout: float = 10.0) -> bool:
        """Wait until the current URL contains ``fragment``."""
        try:
            await self.page.wait_for_url(f"**{fragment}**", timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            return False
        return True

    async def body_text(self) -> str:
        try:
            return await self.page.inner_text("body")
        except PlaywrightError:
            return ""

    async def type_keys(self, text: str) -> None:
        await self.page.keyboard.type(text)

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def screenshot(self, path: str, full_page: bool = True) -> None:
        await self.page.screenshot(path=path, full_page=full_page)

    async def cookies(self) -> list[dict[str, Any]]:
        return await self._context.cookies()

    async def set_cookies(self, cookies: list[dict[str, Any]]) -> None:
        cleaned = []
        for cookie in cookies:
            entry = {k: v for k, v in cookie.items() if k in COOKIE_FIELDS}
            expires = entry.get("expires")
            if expires is None or expires < 0:
                entry.pop("expires", None)
            cleaned.append(entry)
        await self._context.add_cookies(cleaned)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._context.close()
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightDriver:
    """Launches Chromium sessions through Playwright."""

    async def launch(self, options: Optional[LaunchOptions] = None) -> BrowserSession:
        options = options or LaunchOptions()

        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=options.headless,
                args=options.args,
            )
            context_kwargs: dict[str, Any] = {
                "viewport": {
                    "width": options.viewport_width,
                    "height": options.viewport_height,
                },
            }
            if options.record_video_dir:
                Path(options.record_video_dir).mkdir(parents=True, exist_ok=True)
                context_kwargs["record_video_dir"] = options.record_video_dir
                context_kwargs["record_video_size"] = context_kwargs["viewport"]

            context = await browser.new_context(**context_kwargs)
            page = await context.new_page()
        except Exception:
            await playwright.stop()
            raise

        return BrowserSession(playwright, browser, context, page)


async def capture_artifact(
    session: Any,
    artifacts_dir: str,
    kind: str,
    identifier: str,
) -> Optional[str]:
    """Save a full-page screenshot for diagnosis.

    Best-effort: any failure is logged and swallowed so it never masks
    the error that triggered the capture.

    Returns:
        The screenshot path, or None if capture failed.
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    safe_identifier = "".join(c if c.isalnum() or c in "-_" else "_" for c in identifier)[:80]
    path = Path(artifacts_dir) / f"{kind}_{safe_identifier}_{timestamp}.png"

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        await session.screenshot(str(path), full_page=True)
    except Exception as e:
        logger.warning(f"Failed to capture diagnostic screenshot for {kind} {identifier}: {e}")
        return None

    logger.info(f"Diagnostic screenshot saved: {path}")
    return str(path)
