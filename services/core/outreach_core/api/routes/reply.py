"""Reply routes (/reply)."""

from outreach_core.api.routes.queues import QueueRoutes, build_queue_router
from outreach_core.api.schemas.tasks import BulkRepliesIn, ReplyIn, ReplyRetryIn
from outreach_core.domain.models import TaskKind

router = build_queue_router(
    QueueRoutes(
        kind=TaskKind.REPLY,
        prefix="/reply",
        service="Reply Bot",
        id_prefix="reply",
        send_path="/send-reply",
        send_model=ReplyIn,
        send_message="Reply added to queue",
        target_of=lambda payload: payload.get("thread_id"),
        estimated_delay="10s - 1min",
        bulk_path="/bulk-replies",
        bulk_model=BulkRepliesIn,
        bulk_max=50,
        stagger_setting="reply_stagger_seconds",
        retry_path="/retry-reply",
        retry_model=ReplyRetryIn,
    )
)
