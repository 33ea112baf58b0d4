"""Profile extraction routes (/extract)."""

from outreach_core.api.routes.queues import QueueRoutes, build_queue_router
from outreach_core.api.schemas.tasks import ExtractProfilesIn
from outreach_core.domain.models import TaskKind

router = build_queue_router(
    QueueRoutes(
        kind=TaskKind.PROFILE_EXTRACT,
        prefix="/extract",
        service="Profile Extraction Bot",
        id_prefix="extract",
        send_path="/extract-profiles",
        send_model=ExtractProfilesIn,
        send_message="Extraction job queued",
        target_of=lambda payload: payload.get("campaign_id"),
    )
)
