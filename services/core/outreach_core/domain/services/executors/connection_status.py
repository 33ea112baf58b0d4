"""Connection-status check with follow-up message.

For each known profile not yet messaged: open the profile, classify the
relationship, and when the request has been accepted send the profile's
generated message through the profile's Message action. The sweep's
outcomes are reconciled in one write.
"""

from typing import Any, Optional, Sequence

from outreach_core.domain.errors import ActionRejected, ElementNotFound, TaskError
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.executors.base import (
    TaskExecutor,
    TaskResult,
    optional_profile_links,
)
from outreach_core.domain.services.profiles import ProfileRepository, normalize_profile_url
from outreach_core.providers.linkedin import descriptors

PENDING = "pending"
CONNECTABLE = "connectable"
UNKNOWN = "unknown"

# Seconds
PROFILE_SETTLE = 10.0
COMPOSE_TIMEOUT = 5.0


def classify_connection_status(pending_indicator: bool, message_controls: Sequence[Any]) -> str:
    """Classify a profile page, explicit pending indicator first.

    The page's own Message action is the second control labelled
    "Message"; the first belongs to the global messaging overlay.
    """
    if pending_indicator:
        return PENDING
    if len(message_controls) >= 2:
        return CONNECTABLE
    return UNKNOWN


class ConnectionStatusExecutor(TaskExecutor):
    """Checks pending connection requests and messages accepted ones."""

    kind = TaskKind.STATUS_CHECK

    @classmethod
    def validate(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "profile_links": optional_profile_links(payload),
            "campaign_id": payload.get("campaign_id"),
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

        results: list[dict[str, Any]] = []
        targets = []
        for profile in profiles:
            if profile.get("messageSent"):
                results.append({"link": profile.get("link"), "status": "already_marked"})
            elif profile.get("link"):
                targets.append(profile)

        if not targets:
            self.logger.info(f"Status check: nothing to do ({len(results)} already marked)")
            return TaskResult(
                status="completed",
                skipped=True,
                details={"summary": self._summarize(results), "results": results},
            )

        outcomes: dict[str, dict[str, Any]] = {}
        try:
            async with self.session() as session:
                for index, profile in enumerate(targets):
                    if index > 0:
                        await self.pacing.wait(self.pacing.status_check_gap)

                    link = profile["link"]
                    try:
                        result = await self.guarded(
                            session, link, lambda: self.check_profile(session, profile)
                        )
                    except TaskError as e:
                        self.logger.warning(f"Status check failed for {link}: {e.message}", target=link)
                        results.append({"link": link, "status": "error", "error": e.message})
                        continue

                    results.append(result)
                    if result.get("messageSent"):
                        outcomes[link] = {"messageSent": True}
        finally:
            # Sent messages are recorded even when the sweep is cut short
            repo.reconcile(self.kind, outcomes)

        summary = self._summarize(results)
        self.logger.info(f"Status check finished: {summary}")
        return TaskResult(
            status="completed",
            details={"summary": summary, "results": results},
        )

    async def check_profile(self, session: Any, profile: dict[str, Any]) -> dict[str, Any]:
        link = profile["link"]
        await session.navigate(link)
        await self.pacing.sleep(PROFILE_SETTLE)

        pending = await session.find(descriptors.PENDING_INDICATOR) is not None
        message_controls = []
        for label in await session.find_all(descriptors.BUTTON_LABELS):
            if await label.read_text() == descriptors.MESSAGE_LABEL:
                message_controls.append(label)

        status = classify_connection_status(pending, message_controls)
        if status != CONNECTABLE:
            return {"link": link, "status": status, "messageSent": False}

        message = profile.get("generatedMessage")
        if not message:
            return {
                "link": link,
                "status": "connected",
                "messageSent": False,
                "error": "No generated message for profile",
            }

        # Literal second match; not verified against the profile owner
        await message_controls[1].click()
        if await session.wait_for(descriptors.PROFILE_COMPOSE_INPUT, timeout=COMPOSE_TIMEOUT) is None:
            raise ElementNotFound("Message compose box did not open", target=link)

        await self.type_into(session, descriptors.PROFILE_COMPOSE_INPUT, message)

        submit = await session.find(descriptors.PROFILE_COMPOSE_SUBMIT)
        if submit is None:
            raise ElementNotFound("Message send button not found", target=link)
        if not await submit.is_enabled():
            raise ActionRejected("Message send button is disabled", target=link)
        await submit.click()

        self.logger.info(f"Connected, follow-up message sent: {link}", target=link)
        return {"link": link, "status": "connected", "messageSent": True}

    @staticmethod
    def _summarize(results: list[dict[str, Any]]) -> dict[str, int]:
        def count(status: str) -> int:
            return sum(1 for r in results if r.get("status") == status)

        return {
            "total": len(results),
            "connected": count("connected"),
            "pending": count(PENDING),
            "unknown": count(UNKNOWN),
            "errors": count("error"),
            "already_marked": count("already_marked"),
            "message_sent": sum(1 for r in results if r.get("messageSent")),
        }
