"""Job admission and queue inspection API schemas.

Request and response bodies use camelCase on the wire; Python code uses
the snake_case field names.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobAdmittedResponse(CamelModel):
    """Response schema for a single queued job."""

    success: bool = True
    job_id: str = Field(..., description="ID of the admitted job")
    message: str = Field(..., description="Human-readable status message")
    target: Optional[str] = Field(default=None, description="Profile URL or thread id acted on")
    queue_position: int = Field(..., description="Waiting jobs in the queue after admission")
    estimated_delay: Optional[str] = None
    max_retries: Optional[int] = None
    created: bool = Field(default=True, description="False when the id was already queued")


class BulkJobEntry(CamelModel):
    """One admitted item of a bulk request."""

    job_id: str
    position: int
    delay_seconds: float
    priority: int
    target: Optional[str] = None
    created: bool = True


class BulkAdmittedResponse(CamelModel):
    """Response schema for a bulk admission."""

    success: bool = True
    message: str
    jobs: list[BulkJobEntry] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    total_requested: int
    total_queued: int
    estimated_duration: Optional[str] = None


class JobStatusResponse(CamelModel):
    """Response schema for a job's status."""

    success: bool = True
    job_id: str
    state: str
    data: dict[str, Any] = Field(default_factory=dict)
    attempts: int
    max_attempts: int
    priority: int
    run_at: datetime
    created_at: datetime
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    failed_reason: Optional[str] = None
    retryable: Optional[bool] = None
    client_error: Optional[bool] = Field(
        default=None, description="True when the job's own input caused the failure"
    )
    return_value: Optional[dict[str, Any]] = None


class QueueStats(CamelModel):
    """Job counts by state."""

    waiting: int
    delayed: int
    active: int
    completed: int
    failed: int
    total: int


class QueueStatsResponse(CamelModel):
    """Response schema for queue statistics."""

    success: bool = True
    queue: str
    stats: QueueStats


class ClearQueueRequest(CamelModel):
    """Request schema for clearing a queue."""

    type: str = Field(default="waiting", description="waiting, failed, completed or all")


class ClearQueueResponse(CamelModel):
    """Response schema for a queue clear."""

    success: bool = True
    message: str
    type: str
    cleared: int


class QueueHealthResponse(CamelModel):
    """Response schema for a queue health check."""

    status: str
    timestamp: datetime
    service: str
    queue: str
    broker: str
