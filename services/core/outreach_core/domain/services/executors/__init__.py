"""Task executors, one per task kind."""

import os
from typing import Optional

from outreach_core.config import Settings, get_settings
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.auth_cache import AuthenticationCache
from outreach_core.domain.services.credentials import Account, CredentialBundleStore
from outreach_core.domain.services.executors.base import ExecutorContext, TaskExecutor, TaskResult
from outreach_core.domain.services.executors.connect_request import ConnectRequestExecutor
from outreach_core.domain.services.executors.connection_status import ConnectionStatusExecutor
from outreach_core.domain.services.executors.inbox_poll import InboxPollExecutor
from outreach_core.domain.services.executors.profile_extract import ProfileExtractExecutor
from outreach_core.domain.services.executors.reply import ReplyExecutor
from outreach_core.domain.services.pacing import PacingPolicy, TypingProfile
from outreach_core.infrastructure.browser import LaunchOptions, PlaywrightDriver
from outreach_core.infrastructure.crypto import CryptoService
from outreach_core.infrastructure.document_store import DocumentStore, build_document_store

EXECUTORS: dict[str, type[TaskExecutor]] = {
    TaskKind.CONNECT_REQUEST: ConnectRequestExecutor,
    TaskKind.REPLY: ReplyExecutor,
    TaskKind.STATUS_CHECK: ConnectionStatusExecutor,
    TaskKind.INBOX_POLL: InboxPollExecutor,
    TaskKind.PROFILE_EXTRACT: ProfileExtractExecutor,
}


def build_context(
    settings: Optional[Settings] = None,
    store: Optional[DocumentStore] = None,
) -> ExecutorContext:
    """Wire the production collaborators from settings."""
    settings = settings or get_settings()

    crypto = CryptoService(settings.encryption_key) if settings.encryption_key else None
    launch_options = LaunchOptions(
        headless=settings.headless,
        viewport_width=settings.viewport_width,
        viewport_height=settings.viewport_height,
        record_video_dir=(
            os.path.join(settings.artifacts_dir, "videos") if settings.record_video else None
        ),
    )
    auth = AuthenticationCache(
        driver=PlaywrightDriver(),
        store=CredentialBundleStore(settings.cookies_dir, crypto),
        settings=settings,
        launch_options=launch_options,
    )

    return ExecutorContext(
        account=Account.from_settings(settings),
        auth=auth,
        store=store or build_document_store(settings),
        settings=settings,
        pacing=PacingPolicy.from_settings(settings),
        typing=TypingProfile(wpm=settings.typing_wpm),
    )


def build_executor(kind: str, context: ExecutorContext) -> TaskExecutor:
    """Instantiate the executor registered for ``kind``."""
    try:
        executor_cls = EXECUTORS[kind]
    except KeyError:
        raise ValueError(f"No executor registered for task kind: {kind}")
    return executor_cls(context)


__all__ = [
    "EXECUTORS",
    "ExecutorContext",
    "TaskExecutor",
    "TaskResult",
    "build_context",
    "build_executor",
]
