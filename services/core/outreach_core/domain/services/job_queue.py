"""Work queue facade over the jobs ledger.

Admission (single and staggered bulk), processing with per-kind
concurrency, state inspection and clearing. Admission commits the job
before the worker is woken so the drain always finds it.

Usage:
    queue = JobQueue(db, dispatcher=CeleryDispatcher())
    handle = queue.enqueue("reply", {"thread_id": "2-abc", "message": "Hi"})

    # In the worker
    processed = await queue.process("reply", handler)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session as DBSession

from outreach_core.config import Settings, get_settings
from outreach_core.domain.errors import TaskError
from outreach_core.domain.models import ALL_TASK_KINDS, Job, JobStatus, utcnow
from outreach_core.domain.services.jobs import JobService

logger = logging.getLogger(__name__)

# handler(job_id, payload) -> return value stored on the job
JobHandler = Callable[[str, dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]


class UnknownTaskKind(ValueError):
    """Raised when a job is admitted for a kind that has no queue."""

    pass


@dataclass
class JobHandle:
    """Result of admitting one job."""

    job_id: str
    created: bool
    position: int
    state: str


@dataclass
class BulkAdmission:
    """Per-item outcome of a bulk admission."""

    queued: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_requested(self) -> int:
        return len(self.queued) + len(self.skipped)


class JobQueue:
    """Durable, priority-ordered, at-least-once work queue."""

    def __init__(
        self,
        db: DBSession,
        dispatcher: Optional[Any] = None,
        settings: Optional[Settings] = None,
    ):
        """Initialize the queue.

        Args:
            db: SQLAlchemy database session.
            dispatcher: Sends worker wake-ups; None disables them.
            settings: Retention settings; defaults to the global settings.
        """
        self.db = db
        self.jobs = JobService(db)
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()

    # =========================================================================
    # ADMISSION
    # =========================================================================

    def enqueue(
        self,
        kind: str,
        payload: dict[str, Any],
        job_id: Optional[str] = None,
        priority: int = 0,
        delay: float = 0.0,
        max_attempts: int = 1,
    ) -> JobHandle:
        """Admit one job.

        Re-admitting an id that is already present returns the existing
        job with ``created=False`` and schedules nothing.

        Raises:
            UnknownTaskKind: If ``kind`` has no queue.
        """
        if kind not in ALL_TASK_KINDS:
            raise UnknownTaskKind(f"Unknown task kind: {kind}")

        job, created = self.jobs.create_job_or_get(
            queue_name=kind,
            payload=payload,
            job_id=job_id,
            priority=priority,
            delay=delay,
            max_attempts=max_attempts,
        )
        self.db.commit()

        if created:
            logger.info(
                f"Admitted job {job.id} to {kind} (priority={priority}, delay={delay:.0f}s, "
                f"max_attempts={job.max_attempts})"
            )
            if self.dispatcher is not None:
                self.dispatcher.wake(kind, countdown=delay)
        else:
            logger.info(f"Job {job.id} already present in {kind}, admission skipped")

        return JobHandle(
            job_id=job.id,
            created=created,
            position=self.jobs.count_jobs(kind, JobStatus.WAITING),
            state=job.status,
        )

    def enqueue_bulk(
        self,
        kind: str,
        items: list[dict[str, Any]],
        stagger_seconds: float,
        id_prefix: str = "bulk",
        validate: Optional[Callable[[dict[str, Any]], dict[str, Any]]] = None,
        job_id_of: Optional[Callable[[Any], Optional[str]]] = None,
    ) -> BulkAdmission:
        """Admit a batch as a slow drip.

        Item ``i`` is delayed by ``i * stagger_seconds`` and gets priority
        ``-i``. An item that fails validation or admission is reported in
        ``skipped`` and never aborts the batch.

        Args:
            kind: Task kind for every item.
            items: Payloads in submission order.
            stagger_seconds: Delay added per position.
            id_prefix: Prefix of the generated job ids.
            validate: Optional callable returning the normalised payload
                or raising on an invalid item.
            job_id_of: Optional callable returning an item's explicit job
                id; items without one get a generated id.
        """
        result = BulkAdmission()

        for i, item in enumerate(items):
            try:
                payload = validate(item) if validate else item
                job_id = job_id_of(item) if job_id_of else None
                delay = i * stagger_seconds
                handle = self.enqueue(
                    kind,
                    payload,
                    job_id=job_id or JobService.generate_job_id(f"{id_prefix}_{i}"),
                    priority=-i,
                    delay=delay,
                )
            except Exception as e:
                message = e.message if isinstance(e, TaskError) else str(e)
                result.skipped.append({"index": i, "error": message})
                continue

            result.queued.append(
                {
                    "index": i,
                    "job_id": handle.job_id,
                    "created": handle.created,
                    "delay": delay,
                    "priority": -i,
                    "payload": payload,
                }
            )

        logger.info(
            f"Bulk admission to {kind}: {len(result.queued)} queued, {len(result.skipped)} skipped"
        )
        return result

    # =========================================================================
    # PROCESSING
    # =========================================================================

    async def process(
        self,
        kind: str,
        handler: JobHandler,
        concurrency: int = 1,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> int:
        """Run eligible jobs of ``kind`` until none remain.

        At most ``concurrency`` jobs of the kind are active at once across
        all processes sharing the ledger. The loop stops claiming as soon
        as ``should_stop()`` returns True; claimed jobs always finish.

        Returns:
            Number of jobs processed.
        """
        processed = 0

        while not (should_stop and should_stop()):
            # Claims run in a fresh transaction that starts with the queue lock
            self.db.commit()
            claimed: list[Job] = []
            while len(claimed) < concurrency:
                job = self.jobs.claim_next_job(kind, concurrency=concurrency)
                if job is None:
                    break
                claimed.append(job)
            self.db.commit()

            if not claimed:
                break

            outcomes = await asyncio.gather(
                *(self._run_one(job.id, dict(job.payload_json), handler) for job in claimed)
            )
            for job_id, outcome in zip((job.id for job in claimed), outcomes):
                self._record_outcome(kind, job_id, outcome)
                processed += 1

            self.jobs.prune_finished(
                kind,
                keep_completed=self.settings.keep_completed_jobs,
                keep_failed=self.settings.keep_failed_jobs,
            )
            self.db.commit()

        return processed

    async def _run_one(
        self,
        job_id: str,
        payload: dict[str, Any],
        handler: JobHandler,
    ) -> tuple[bool, Any]:
        try:
            return True, await handler(job_id, payload)
        except Exception as e:
            return False, e

    def _record_outcome(self, kind: str, job_id: str, outcome: tuple[bool, Any]) -> None:
        ok, value = outcome
        if ok:
            self.jobs.complete_job(job_id, result=value)
            logger.info(f"Job {job_id} in {kind} completed")
            return

        error = value
        if isinstance(error, TaskError):
            retryable = error.retryable
            partial = error.partial_result
            client_error = error.client_error
        else:
            retryable = True
            partial = None
            client_error = False

        status = self.jobs.fail_job(
            job_id, error, retryable=retryable, result=partial, client_error=client_error
        )
        if status == JobStatus.WAITING:
            job = self.jobs.get_job(job_id)
            self.db.refresh(job)
            countdown = max(0.0, (job.run_at - utcnow()).total_seconds())
            logger.warning(
                f"Job {job_id} in {kind} failed (attempt {job.attempts}/{job.max_attempts}), "
                f"retrying in {countdown:.1f}s: {error}"
            )
            if self.dispatcher is not None:
                self.db.commit()
                self.dispatcher.wake(kind, countdown=countdown)
        else:
            logger.error(f"Job {job_id} in {kind} failed: {error}")

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get_job(job_id)

    def get_state(self, job_id: str) -> Optional[str]:
        job = self.jobs.get_job(job_id)
        if job is None:
            return None
        if job.status == JobStatus.WAITING and job.run_at > utcnow():
            return "delayed"
        return job.status

    def list_jobs(self, kind: str, state: Optional[str] = None, limit: int = 100) -> list[Job]:
        return self.jobs.list_jobs(queue_name=kind, status=state, limit=limit)

    def stats(self, kind: str) -> dict[str, int]:
        return self.jobs.stats(kind)

    def seconds_until_next(self, kind: str) -> Optional[float]:
        """Seconds until the next waiting job of ``kind`` is eligible."""
        run_at: Optional[datetime] = self.jobs.next_run_at(kind)
        if run_at is None:
            return None
        return max(0.0, (run_at - utcnow()).total_seconds())

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def clear(self, kind: str, state: str) -> int:
        """Remove jobs by state; see ``JobService.clear_jobs``."""
        cleared = self.jobs.clear_jobs(kind, state)
        self.db.commit()
        logger.info(f"Cleared {cleared} {state} jobs from {kind}")
        return cleared

    def recover_interrupted(self, kind: Optional[str] = None) -> int:
        """Return jobs left active by a dead worker to waiting."""
        recovered = self.jobs.recover_interrupted(kind)
        self.db.commit()
        if recovered:
            logger.warning(f"Recovered {recovered} interrupted jobs")
        return recovered
