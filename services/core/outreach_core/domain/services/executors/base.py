"""Common shape of the browser task executors.

Every executor:

1. skips without touching the browser when its effect is already recorded,
2. acquires an authenticated session as a scoped resource (always closed),
3. classifies page state before acting and performs at most one
   state-changing action,
4. captures a screenshot on failure (best-effort) and re-raises a typed
   ``TaskError``.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from outreach_core.config import Settings
from outreach_core.domain.errors import TaskError, ValidationError
from outreach_core.domain.services.auth_cache import AuthenticationCache
from outreach_core.domain.services.credentials import Account
from outreach_core.domain.services.pacing import PacingPolicy, TypingProfile, simulate_typing
from outreach_core.infrastructure.browser import capture_artifact
from outreach_core.infrastructure.document_store import DocumentStore
from outreach_core.observability.logging import StructuredLogger, TaskContext
from outreach_core.providers.linkedin import descriptors

T = TypeVar("T")

PROFILE_PATH_SEGMENT = descriptors.PROFILE_PATH_SEGMENT


def require_profile_url(value: Any, field_name: str = "profile_url") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required", target=field_name)
    if PROFILE_PATH_SEGMENT not in value:
        raise ValidationError(f"Invalid profile URL: {value}", target=value)
    return value.strip()


def require_text(
    value: Any,
    field_name: str,
    max_length: int,
    required: bool = True,
) -> Optional[str]:
    if value is None and not required:
        return None
    if not isinstance(value, str) or (required and not value.strip()):
        raise ValidationError(
            f"{field_name} is required and must be a non-empty string", target=field_name
        )
    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} too long (max {max_length} characters)", target=field_name
        )
    return value


def optional_profile_links(payload: dict[str, Any]) -> Optional[list[str]]:
    links = payload.get("profile_links")
    if links is None:
        return None
    if not isinstance(links, list):
        raise ValidationError("profile_links must be a list", target="profile_links")
    return [require_profile_url(link, "profile_links") for link in links]


@dataclass
class TaskResult:
    """Structured outcome of one executor run."""

    status: str
    target: Optional[str] = None
    skipped: bool = False
    details: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "target": self.target,
            "skipped": self.skipped,
            "warnings": list(self.warnings),
            **self.details,
        }


@dataclass
class ExecutorContext:
    """Collaborators shared by every executor run."""

    account: Account
    auth: AuthenticationCache
    store: DocumentStore
    settings: Settings
    pacing: PacingPolicy = field(default_factory=PacingPolicy)
    typing: TypingProfile = field(default_factory=TypingProfile)


class TaskExecutor:
    """Base class for one task kind."""

    kind: str = ""

    def __init__(self, context: ExecutorContext):
        self.context = context
        self.account = context.account
        self.settings = context.settings
        self.pacing = context.pacing
        self.logger = StructuredLogger(
            f"outreach_core.executors.{self.kind}",
            TaskContext(task_kind=self.kind, account=self.account.email),
        )

    @classmethod
    def validate(cls, payload: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalise a payload; raises ``ValidationError``."""
        return dict(payload)

    @classmethod
    def check_account(cls, payload: dict[str, Any], account: Account) -> None:
        """Reject a payload addressed to another account; raises ``ValidationError``."""

    async def execute(self, payload: dict[str, Any], job_id: Optional[str] = None) -> TaskResult:
        raise NotImplementedError

    async def __call__(self, job_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Job queue handler entry point."""
        self.logger = self.logger.bind(
            TaskContext(job_id=job_id, task_kind=self.kind, account=self.account.email)
        )
        payload = self.validate(payload)
        self.check_account(payload, self.account)
        result = await self.execute(payload, job_id=job_id)
        return result.to_dict()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Any]:
        async with self.context.auth.acquire_session(self.account) as session:
            yield session

    async def guarded(
        self,
        session: Any,
        target: str,
        step: Callable[[], Awaitable[T]],
    ) -> T:
        """Run ``step``; on failure capture a screenshot and raise a ``TaskError``."""
        try:
            return await step()
        except Exception as e:
            await capture_artifact(session, self.settings.artifacts_dir, self.kind, target)
            if isinstance(e, TaskError):
                if e.target is None:
                    e.target = target
                raise
            raise TaskError(f"{type(e).__name__}: {e}", target=target) from e

    async def type_into(self, session: Any, descriptor: str, text: str) -> float:
        return await simulate_typing(
            session,
            descriptor,
            text,
            profile=self.context.typing,
            sleep=self.pacing.sleep,
            rng=self.pacing.rng,
        )

