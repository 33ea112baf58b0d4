"""API schemas."""

from outreach_core.api.schemas.jobs import (
    BulkAdmittedResponse,
    BulkJobEntry,
    ClearQueueRequest,
    ClearQueueResponse,
    JobAdmittedResponse,
    JobStatusResponse,
    QueueHealthResponse,
    QueueStats,
    QueueStatsResponse,
)
from outreach_core.api.schemas.tasks import (
    BulkConnectIn,
    BulkRepliesIn,
    BulkStatusChecksIn,
    ConnectRequestIn,
    ConnectRetryIn,
    ExtractProfilesIn,
    InboxPollIn,
    ReplyIn,
    ReplyRetryIn,
    StatusCheckIn,
    StatusCheckRetryIn,
)

__all__ = [
    # Job schemas
    "BulkAdmittedResponse",
    "BulkJobEntry",
    "ClearQueueRequest",
    "ClearQueueResponse",
    "JobAdmittedResponse",
    "JobStatusResponse",
    "QueueHealthResponse",
    "QueueStats",
    "QueueStatsResponse",
    # Task request schemas
    "BulkConnectIn",
    "BulkRepliesIn",
    "BulkStatusChecksIn",
    "ConnectRequestIn",
    "ConnectRetryIn",
    "ExtractProfilesIn",
    "InboxPollIn",
    "ReplyIn",
    "ReplyRetryIn",
    "StatusCheckIn",
    "StatusCheckRetryIn",
]
