"""Unit tests for the browser session wrapper, wake-up dispatch and executor registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from outreach_core.domain.errors import NavigationTimeout
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.executors import EXECUTORS, build_executor
from outreach_core.domain.services.executors.reply import ReplyExecutor
from outreach_core.infrastructure.browser import BrowserSession, capture_artifact
from outreach_core.infrastructure.dispatch import DRAIN_TASK_NAME, CeleryDispatcher


@pytest.fixture
def playwright_objects():
    playwright = MagicMock()
    playwright.stop = AsyncMock()
    browser = MagicMock()
    browser.close = AsyncMock()
    context = MagicMock()
    context.close = AsyncMock()
    context.add_cookies = AsyncMock()
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    return playwright, browser, context, page


@pytest.fixture
def session(playwright_objects):
    return BrowserSession(*playwright_objects)


class TestBrowserSession:
    @pytest.mark.asyncio
    async def test_navigate_timeout_translated(self, session, playwright_objects):
        page = playwright_objects[3]
        page.goto.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded")

        with pytest.raises(NavigationTimeout) as exc_info:
            await session.navigate("https://www.linkedin.com/feed/", timeout=30)

        assert exc_info.value.target == "https://www.linkedin.com/feed/"
        assert exc_info.value.retryable is True
        assert page.goto.await_args.kwargs["timeout"] == 30000

    @pytest.mark.asyncio
    async def test_wait_for_returns_none_on_timeout(self, session, playwright_objects):
        playwright_objects[3].wait_for_selector.side_effect = PlaywrightTimeoutError("timeout")

        assert await session.wait_for("#missing", timeout=1) is None

    @pytest.mark.asyncio
    async def test_set_cookies_drops_unknown_fields_and_session_expiry(self, session, playwright_objects):
        context = playwright_objects[2]

        await session.set_cookies([
            {"name": "li_at", "value": "AQ", "domain": ".linkedin.com", "expires": -1, "priority": "High"},
            {"name": "JSESSIONID", "value": "ajax:1", "domain": ".linkedin.com", "expires": 1893456000},
        ])

        cookies = context.add_cookies.await_args.args[0]
        assert cookies[0] == {"name": "li_at", "value": "AQ", "domain": ".linkedin.com"}
        assert cookies[1]["expires"] == 1893456000

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, session, playwright_objects):
        playwright, browser, context, _ = playwright_objects

        await session.close()
        await session.close()

        context.close.assert_awaited_once()
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_stops_playwright_when_browser_close_fails(self, session, playwright_objects):
        playwright, browser, _, _ = playwright_objects
        browser.close.side_effect = RuntimeError("browser already gone")

        with pytest.raises(RuntimeError):
            await session.close()

        playwright.stop.assert_awaited_once()


class TestCaptureArtifact:
    @pytest.mark.asyncio
    async def test_screenshot_path(self, tmp_path):
        session = MagicMock()
        session.screenshot = AsyncMock()

        path = await capture_artifact(session, str(tmp_path), "reply", "2-abc/def")

        assert path.startswith(str(tmp_path / "reply_2-abc_def_"))
        assert path.endswith(".png")
        session.screenshot.assert_awaited_once_with(path, full_page=True)

    @pytest.mark.asyncio
    async def test_capture_failure_returns_none(self, tmp_path):
        session = MagicMock()
        session.screenshot = AsyncMock(side_effect=RuntimeError("page crashed"))

        assert await capture_artifact(session, str(tmp_path), "reply", "2-abc") is None


class TestCeleryDispatcher:
    def test_wake_sends_drain_to_kind_queue(self):
        celery_app = MagicMock()

        assert CeleryDispatcher(celery_app).wake(TaskKind.REPLY, countdown=15.0) is True

        celery_app.send_task.assert_called_once_with(
            DRAIN_TASK_NAME,
            kwargs={"kind": TaskKind.REPLY},
            queue=TaskKind.REPLY,
            countdown=15.0,
        )

    def test_negative_countdown_clamped(self):
        celery_app = MagicMock()

        CeleryDispatcher(celery_app).wake(TaskKind.REPLY, countdown=-3.0)

        assert celery_app.send_task.call_args.kwargs["countdown"] == 0.0

    def test_broker_failure_reported_not_raised(self):
        celery_app = MagicMock()
        celery_app.send_task.side_effect = ConnectionError("broker down")

        assert CeleryDispatcher(celery_app).wake(TaskKind.REPLY) is False

    def test_ping_failure(self):
        celery_app = MagicMock()
        celery_app.connection_for_write.side_effect = ConnectionError("broker down")

        assert CeleryDispatcher(celery_app).ping() is False


class TestExecutorRegistry:
    def test_every_kind_registered(self):
        assert set(EXECUTORS) == {
            TaskKind.CONNECT_REQUEST,
            TaskKind.REPLY,
            TaskKind.STATUS_CHECK,
            TaskKind.INBOX_POLL,
            TaskKind.PROFILE_EXTRACT,
        }

    def test_build_executor(self):
        assert isinstance(build_executor(TaskKind.REPLY, MagicMock()), ReplyExecutor)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            build_executor("send_email", MagicMock())
