"""Connection request routes (/connect)."""

from outreach_core.api.routes.queues import QueueRoutes, build_queue_router
from outreach_core.api.schemas.tasks import BulkConnectIn, ConnectRequestIn, ConnectRetryIn
from outreach_core.domain.models import TaskKind

router = build_queue_router(
    QueueRoutes(
        kind=TaskKind.CONNECT_REQUEST,
        prefix="/connect",
        service="Connection Request Bot",
        id_prefix="connect",
        send_path="/send-connect-request",
        send_model=ConnectRequestIn,
        send_message="Connection request added to queue",
        target_of=lambda payload: payload.get("profile_url"),
        estimated_delay="30s - 2min",
        bulk_path="/bulk-connect-requests",
        bulk_model=BulkConnectIn,
        bulk_max=100,
        stagger_setting="connect_stagger_seconds",
        retry_path="/retry-connect-request",
        retry_model=ConnectRetryIn,
    )
)
