"""Profile detail extraction for campaign bot accounts."""

from typing import Any, Optional, Sequence

from outreach_core.domain.errors import TaskError
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.executors.base import (
    TaskExecutor,
    TaskResult,
    optional_profile_links,
)
from outreach_core.domain.services.profiles import ProfileRepository, normalize_profile_url
from outreach_core.providers.linkedin import descriptors

# Seconds
LANDMARK_TIMEOUT = 10.0


async def first_text(session: Any, candidates: Sequence[str]) -> Optional[str]:
    """Text of the first candidate selector that yields a non-empty value."""
    for selector in candidates:
        element = await session.find(selector)
        if element is None:
            continue
        text = await element.inner_text()
        if text:
            return text
    return None


class ProfileExtractExecutor(TaskExecutor):
    """Reads name, headline and location for known profiles."""

    kind = TaskKind.PROFILE_EXTRACT

    @classmethod
    def validate(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "campaign_id": payload.get("campaign_id"),
            "profile_links": optional_profile_links(payload),
            "force": bool(payload.get("force", False)),
        }

    async def execute(self, payload: dict[str, Any], job_id: Optional[str] = None) -> TaskResult:
        repo = ProfileRepository(self.context.store, self.account, payload.get("campaign_id"))
        profiles = repo.list_profiles()

        wanted = payload.get("profile_links")
        if wanted is not None:
            wanted_links = {normalize_profile_url(link) for link in wanted}
            profiles = [
                p for p in profiles
                if p.get("link") and normalize_profile_url(p["link"]) in wanted_links
            ]

        force = payload.get("force", False)
        targets = [
            p for p in profiles
            if p.get("link") and (force or not (p.get("name") and p.get("headline")))
        ]

        if not targets:
            self.logger.info("Profile extraction: every profile already extracted")
            return TaskResult(
                status="completed",
                skipped=True,
                details={"total": len(profiles), "extracted": 0, "errors": 0},
            )

        outcomes: dict[str, dict[str, Any]] = {}
        errors = 0
        finished = False
        try:
            async with self.session() as session:
                for index, profile in enumerate(targets):
                    if index > 0:
                        await self.pacing.wait(self.pacing.extract_gap)

                    link = profile["link"]
                    try:
                        fields = await self.guarded(session, link, lambda: self.extract_one(session, link))
                    except TaskError as e:
                        self.logger.warning(f"Extraction failed for {link}: {e.message}", target=link)
                        outcomes[link] = {"error": e.message}
                        errors += 1
                        continue

                    if profile.get("error"):
                        fields["error"] = None
                    outcomes[link] = fields
            finished = True
        finally:
            changed = repo.reconcile(self.kind, outcomes, extra=self._batch_fields(repo, errors, finished))

        return TaskResult(
            status="completed",
            details={
                "total": len(profiles),
                "extracted": len(targets) - errors,
                "errors": errors,
                "changed": len(changed),
            },
        )

    async def extract_one(self, session: Any, link: str) -> dict[str, Any]:
        await session.navigate(link)
        if await session.wait_for(descriptors.PROFILE_LANDMARK, timeout=LANDMARK_TIMEOUT) is None:
            self.logger.warning(f"Profile landmark absent, reading anyway: {link}")

        fields = {}
        for name, candidates in descriptors.PROFILE_FIELDS.items():
            value = await first_text(session, candidates)
            if value:
                fields[name] = value
        return fields

    def _batch_fields(
        self, repo: ProfileRepository, errors: int, finished: bool
    ) -> Optional[dict[str, Any]]:
        if repo.layout != "campaign":
            return None
        if not finished:
            status = "interrupted"
        elif errors:
            status = "completed_with_errors"
        else:
            status = "completed"
        return {
            "lastExtracted": self.context.store.server_timestamp(),
            "extractionStatus": status,
        }
