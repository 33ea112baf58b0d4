"""Queue control routes shared by every task kind.

``build_queue_router`` produces one router per kind with the same shape:

- POST {send_path} - Admit one job
- POST {bulk_path} - Admit a staggered batch (kinds with bulk support)
- POST {retry_path} - Re-admit with high priority and retries
- GET /job-status/{job_id} - Job state and result
- GET /queue-stats - Job counts by state
- GET /health - Broker and ledger health
- POST /clear-queue - Remove jobs by state
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from outreach_core.api.deps import DBSession, DispatcherDep, JobQueueDep
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
from outreach_core.api.schemas.tasks import BulkRequest, TaskRequest
from outreach_core.config import get_settings
from outreach_core.domain.errors import ValidationError
from outreach_core.domain.services.credentials import Account
from outreach_core.domain.services.executors import EXECUTORS
from outreach_core.domain.services.jobs import JobService

logger = logging.getLogger(__name__)

RETRY_PRIORITY = 10


@dataclass
class QueueRoutes:
    """Describes the routes of one task kind."""

    kind: str
    prefix: str
    service: str
    id_prefix: str
    send_path: str
    send_model: type[TaskRequest]
    send_message: str
    target_of: Callable[[dict[str, Any]], Optional[str]] = lambda payload: None
    estimated_delay: Optional[str] = None
    bulk_path: Optional[str] = None
    bulk_model: Optional[type[BulkRequest]] = None
    bulk_max: int = 100
    stagger_setting: Optional[str] = None
    retry_path: Optional[str] = None
    retry_model: Optional[type[TaskRequest]] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def error_detail(message: str, target: Optional[str] = None, **extra: Any) -> dict[str, Any]:
    """Error body carried by every failed request."""
    return {
        "success": False,
        "error": message,
        "target": target,
        "timestamp": _now().isoformat(),
        **extra,
    }


def build_queue_router(routes: QueueRoutes) -> APIRouter:
    """Build the router for one task kind."""
    router = APIRouter(prefix=routes.prefix, tags=[routes.kind])
    executor_cls = EXECUTORS[routes.kind]

    def check(payload: dict[str, Any]) -> dict[str, Any]:
        payload = executor_cls.validate(payload)
        executor_cls.check_account(payload, Account.from_settings(get_settings()))
        return payload

    def validate_payload(payload: dict[str, Any]) -> dict[str, Any]:
        try:
            return check(payload)
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=error_detail("Validation failed", e.target, details=[e.message]),
            )

    def admit(
        queue: JobQueueDep,
        payload: dict[str, Any],
        job_prefix: str,
        priority: int,
        max_attempts: int = 1,
        job_id: Optional[str] = None,
    ):
        payload["requested_at"] = _now().isoformat()
        target = routes.target_of(payload)
        try:
            return queue.enqueue(
                routes.kind,
                payload,
                job_id=job_id or JobService.generate_job_id(job_prefix),
                priority=priority,
                max_attempts=max_attempts,
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to admit {routes.kind} job: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=error_detail(str(e), target),
            )

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    send_model = routes.send_model

    @router.post(
        routes.send_path,
        response_model=JobAdmittedResponse,
        summary=f"Queue one {routes.kind} job",
    )
    async def send(queue: JobQueueDep, body: Optional[send_model] = None):
        body = body or send_model()
        payload = validate_payload(body.to_payload())
        handle = admit(queue, payload, routes.id_prefix, body.priority, job_id=body.job_id)
        return JobAdmittedResponse(
            job_id=handle.job_id,
            message=routes.send_message,
            target=routes.target_of(payload),
            queue_position=handle.position,
            estimated_delay=routes.estimated_delay,
            created=handle.created,
        )

    if routes.bulk_path and routes.bulk_model:
        bulk_model = routes.bulk_model

        @router.post(
            routes.bulk_path,
            response_model=BulkAdmittedResponse,
            summary=f"Queue a staggered batch of {routes.kind} jobs",
        )
        async def send_bulk(queue: JobQueueDep, body: bulk_model):
            items = body.items
            if not items:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=error_detail(f"{body.items_field} must be a non-empty array"),
                )
            if len(items) > routes.bulk_max:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=error_detail(
                        f"Maximum {routes.bulk_max} {body.items_field} per bulk request"
                    ),
                )

            def validate_item(item: Any) -> dict[str, Any]:
                try:
                    payload = body.item_payload(item)
                except PydanticValidationError as e:
                    first = e.errors()[0]
                    location = ".".join(str(part) for part in first["loc"])
                    raise ValidationError(f"{location}: {first['msg']}" if location else first["msg"])
                payload = check(payload)
                payload["requested_at"] = _now().isoformat()
                payload["bulk_request"] = True
                return payload

            stagger = getattr(get_settings(), routes.stagger_setting)
            try:
                admission = queue.enqueue_bulk(
                    routes.kind,
                    items,
                    stagger_seconds=stagger,
                    id_prefix=f"bulk_{routes.id_prefix}",
                    validate=validate_item,
                    job_id_of=body.item_job_id,
                )
            except SQLAlchemyError as e:
                logger.error(f"Bulk admission to {routes.kind} failed: {e}", exc_info=True)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=error_detail(str(e)),
                )

            jobs = [
                BulkJobEntry(
                    job_id=entry["job_id"],
                    position=entry["index"],
                    delay_seconds=entry["delay"],
                    priority=entry["priority"],
                    target=routes.target_of(entry["payload"]),
                    created=entry["created"],
                )
                for entry in admission.queued
            ]
            errors = [
                f"{body.item_label} {entry['index']}: {entry['error']}"
                for entry in admission.skipped
            ]
            total = admission.total_requested
            return BulkAdmittedResponse(
                message=f"{len(jobs)} {body.items_field} added to queue",
                jobs=jobs,
                errors=errors,
                total_requested=total,
                total_queued=len(jobs),
                estimated_duration=f"at least {int(stagger * max(0, total - 1))} seconds",
            )

    if routes.retry_path and routes.retry_model:
        retry_model = routes.retry_model

        @router.post(
            routes.retry_path,
            response_model=JobAdmittedResponse,
            summary=f"Re-queue a {routes.kind} job with high priority",
        )
        async def retry(queue: JobQueueDep, body: retry_model):
            payload = validate_payload(body.to_payload())
            payload["is_retry"] = True
            handle = admit(
                queue,
                payload,
                f"retry_{routes.id_prefix}",
                RETRY_PRIORITY,
                max_attempts=body.max_retries,
                job_id=body.job_id,
            )
            return JobAdmittedResponse(
                job_id=handle.job_id,
                message=f"Retry {routes.kind} job added to queue with high priority",
                target=routes.target_of(payload),
                queue_position=handle.position,
                estimated_delay=routes.estimated_delay,
                max_retries=body.max_retries,
                created=handle.created,
            )

    # -------------------------------------------------------------------------
    # Inspection and maintenance
    # -------------------------------------------------------------------------

    @router.get(
        "/job-status/{job_id}",
        response_model=JobStatusResponse,
        summary="Get job status",
    )
    async def job_status(job_id: str, queue: JobQueueDep):
        job = queue.get_job(job_id)
        if job is None or job.queue_name != routes.kind:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=error_detail("Job not found", job_id=job_id),
            )

        return JobStatusResponse(
            job_id=job.id,
            state=queue.get_state(job.id),
            data=job.payload_json,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
            priority=job.priority,
            run_at=job.run_at,
            created_at=job.created_at,
            processed_at=job.processed_at,
            finished_at=job.finished_at,
            failed_reason=job.failed_reason,
            retryable=job.retryable,
            client_error=job.client_error,
            return_value=job.return_value,
        )

    @router.get(
        "/queue-stats",
        response_model=QueueStatsResponse,
        summary="Get queue statistics",
    )
    async def queue_stats(queue: JobQueueDep):
        return QueueStatsResponse(queue=routes.kind, stats=QueueStats(**queue.stats(routes.kind)))

    @router.get(
        "/health",
        response_model=QueueHealthResponse,
        summary="Queue health check",
    )
    async def health(db: DBSession, dispatcher: DispatcherDep):
        try:
            db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Ledger health check failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={
                    "status": "unhealthy",
                    "timestamp": _now().isoformat(),
                    "service": routes.service,
                    "error": str(e),
                },
            )

        broker = "connected" if dispatcher.ping() else "disconnected"
        return QueueHealthResponse(
            status="healthy",
            timestamp=_now(),
            service=routes.service,
            queue="connected",
            broker=broker,
        )

    @router.post(
        "/clear-queue",
        response_model=ClearQueueResponse,
        summary="Clear jobs by state",
    )
    async def clear_queue(
        queue: JobQueueDep,
        body: Optional[ClearQueueRequest] = None,
    ):
        body = body or ClearQueueRequest()
        try:
            cleared = queue.clear(routes.kind, body.type)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=error_detail("Invalid type. Use: waiting, failed, completed, or all"),
            )

        return ClearQueueResponse(
            message=f"Cleared {cleared} {body.type} jobs from queue",
            type=body.type,
            cleared=cleared,
        )

    return router
