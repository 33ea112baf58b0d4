"""Connection status check routes (/status)."""

from typing import Any, Optional

from outreach_core.api.routes.queues import QueueRoutes, build_queue_router
from outreach_core.api.schemas.tasks import BulkStatusChecksIn, StatusCheckIn, StatusCheckRetryIn
from outreach_core.domain.models import TaskKind


def _target(payload: dict[str, Any]) -> Optional[str]:
    links = payload.get("profile_links")
    if links is None:
        return "all"
    return links[0] if len(links) == 1 else f"{len(links)} profiles"


router = build_queue_router(
    QueueRoutes(
        kind=TaskKind.STATUS_CHECK,
        prefix="/status",
        service="Connection Status Bot",
        id_prefix="status",
        send_path="/send-status-check",
        send_model=StatusCheckIn,
        send_message="Status check added to queue",
        target_of=_target,
        bulk_path="/bulk-status-checks",
        bulk_model=BulkStatusChecksIn,
        bulk_max=100,
        stagger_setting="status_check_stagger_seconds",
        retry_path="/retry-status-check",
        retry_model=StatusCheckRetryIn,
    )
)
