"""Connection request sender."""

from dataclasses import dataclass
from typing import Any, Optional

from outreach_core.domain.errors import (
    AMBIGUOUS_OUTCOME,
    ActionRejected,
    ElementNotFound,
    NavigationTimeout,
)
from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.connections import ConnectionRequestRepository
from outreach_core.domain.services.executors.base import (
    TaskExecutor,
    TaskResult,
    require_profile_url,
    require_text,
)
from outreach_core.providers.linkedin import descriptors

ALREADY_CONNECTED = "already_connected"
ALREADY_PENDING = "already_pending"
FOLLOW_ONLY = "follow_only"
CONNECT_AVAILABLE = "connect_available"

MAX_NOTE_LENGTH = 300

# Seconds
PROFILE_TIMEOUT = 15.0
MENU_SETTLE = 2.0
DIALOG_TIMEOUT = 10.0
SHORT_SETTLE = 1.0


@dataclass
class RelationshipSignals:
    """What the profile page shows about the existing relationship."""

    first_degree: bool = False
    pending: bool = False
    follow: bool = False
    connect: bool = False


def classify_relationship(signals: RelationshipSignals) -> Optional[str]:
    """Classify in fixed priority order; None when nothing matches."""
    if signals.first_degree:
        return ALREADY_CONNECTED
    if signals.pending:
        return ALREADY_PENDING
    if signals.follow and not signals.connect:
        return FOLLOW_ONLY
    if signals.connect:
        return CONNECT_AVAILABLE
    return None


class ConnectRequestExecutor(TaskExecutor):
    """Sends one connection request, with an optional note."""

    kind = TaskKind.CONNECT_REQUEST

    @classmethod
    def validate(cls, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "profile_url": require_profile_url(payload.get("profile_url")),
            "note": require_text(payload.get("note"), "note", MAX_NOTE_LENGTH, required=False) or None,
        }

    async def execute(self, payload: dict[str, Any], job_id: Optional[str] = None) -> TaskResult:
        profile_url = payload["profile_url"]
        note = payload.get("note")
        requests = ConnectionRequestRepository(self.context.store, self.account)

        existing = requests.get(profile_url)
        if existing and requests.is_settled(profile_url):
            self.logger.info(
                f"Connection request to {profile_url} already {existing['status']}, skipping",
                target=profile_url,
            )
            return TaskResult(status=existing["status"], target=profile_url, skipped=True)

        await self.pacing.wait(self.pacing.connect_pre_delay)

        async with self.session() as session:
            result = await self.guarded(
                session, profile_url, lambda: self._send(session, profile_url, note)
            )

        requests.record(profile_url, result.status, note=note, job_id=job_id)
        return result

    async def observe_relationship(self, session: Any) -> RelationshipSignals:
        signals = RelationshipSignals()

        badge = await session.find(descriptors.DEGREE_BADGE)
        if badge is not None and descriptors.FIRST_DEGREE in await badge.read_text():
            signals.first_degree = True
        signals.pending = await session.find(descriptors.PENDING_INDICATOR) is not None
        signals.follow = await session.find(descriptors.FOLLOW_LABEL) is not None
        signals.connect = await session.find(descriptors.CONNECT_ACTION) is not None

        # Follow as primary action hides Connect in the overflow menu
        if signals.follow and not signals.connect:
            more = await session.find(descriptors.MORE_ACTIONS)
            if more is not None:
                await more.click()
                await self.pacing.sleep(MENU_SETTLE)
                signals.connect = await session.find(descriptors.CONNECT_ACTION) is not None

        return signals

    async def _send(self, session: Any, profile_url: str, note: Optional[str]) -> TaskResult:
        await session.navigate(profile_url)
        if await session.wait_for(descriptors.PROFILE_LANDMARK, timeout=PROFILE_TIMEOUT) is None:
            raise NavigationTimeout("Profile page did not load", target=profile_url)

        relationship = classify_relationship(await self.observe_relationship(session))
        if relationship is None:
            raise ElementNotFound(
                "Connect button not found - no eligible action available", target=profile_url
            )
        if relationship != CONNECT_AVAILABLE:
            self.logger.info(f"No request sent to {profile_url}: {relationship}", target=profile_url)
            return TaskResult(status=relationship, target=profile_url)

        connect = await session.find(descriptors.CONNECT_ACTION)
        await connect.click()
        await self.pacing.sleep(MENU_SETTLE)

        note_included = False
        if note:
            add_note = await session.wait_for(descriptors.ADD_NOTE, timeout=DIALOG_TIMEOUT)
            if add_note is not None:
                await add_note.click()
                await self.pacing.sleep(SHORT_SETTLE)
                await self.type_into(session, descriptors.NOTE_INPUT, note)
                note_included = True
            else:
                self.logger.warning(f"Add a note unavailable, sending without note: {profile_url}")

        send = await session.wait_for(descriptors.SEND_INVITATION, timeout=DIALOG_TIMEOUT)
        if send is None:
            raise ElementNotFound("Send invitation button not found", target=profile_url)
        if not await send.is_enabled():
            raise ActionRejected(
                "Send button is disabled - message may be empty", target=profile_url
            )
        await send.click()
        await self.pacing.sleep(MENU_SETTLE)

        warnings = []
        if await session.find(descriptors.SEND_INVITATION) is not None:
            warnings.append(AMBIGUOUS_OUTCOME)
            self.logger.warning(f"Invitation dialog still open after send: {profile_url}")

        self.logger.info(f"Connection request sent to {profile_url}", target=profile_url)
        return TaskResult(
            status="sent",
            target=profile_url,
            details={"note_included": note_included},
            warnings=warnings,
        )
