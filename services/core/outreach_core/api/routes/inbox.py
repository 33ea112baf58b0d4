"""Inbox poll routes (/inbox)."""

from outreach_core.api.routes.queues import QueueRoutes, build_queue_router
from outreach_core.api.schemas.tasks import InboxPollIn
from outreach_core.domain.models import TaskKind

router = build_queue_router(
    QueueRoutes(
        kind=TaskKind.INBOX_POLL,
        prefix="/inbox",
        service="Inbox Checker",
        id_prefix="inbox",
        send_path="/poll-inbox",
        send_model=InboxPollIn,
        send_message="Inbox poll queued",
    )
)
