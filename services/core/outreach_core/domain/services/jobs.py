"""Jobs ledger service for Outreach.

Provides job admission, idempotent ids, claiming, status management and
retention. The ledger is the durable side of the work queues: Celery only
carries wake-ups, every state transition happens here.
"""

import traceback
import uuid
from datetime import timedelta
from typing import Any, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import aliased

from outreach_core.domain.models import Job, JobStatus, QueueLock, utcnow
from outreach_core.infrastructure.backoff import JOB_RETRY_BACKOFF, BackoffStrategy

# Valid job statuses
VALID_STATUSES = {
    JobStatus.WAITING,
    JobStatus.ACTIVE,
    JobStatus.COMPLETED,
    JobStatus.FAILED,
}

# States accepted by clear_jobs()
CLEARABLE_STATES = {"waiting", "failed", "completed", "all"}

# Maximum length for error messages
MAX_ERROR_LENGTH = 5000


class JobService:
    """Service for job ledger operations."""

    def __init__(self, db: DBSession, backoff: Optional[BackoffStrategy] = None):
        """Initialize the job service.

        Args:
            db: SQLAlchemy database session.
            backoff: Delay strategy between explicit retry attempts.
        """
        self.db = db
        self.backoff = backoff or JOB_RETRY_BACKOFF

    @staticmethod
    def generate_job_id(prefix: str) -> str:
        """Generate a fresh, unique job id such as ``reply_1712345678901_3f9a0c1d``."""
        millis = int(utcnow().timestamp() * 1000)
        return f"{prefix}_{millis}_{uuid.uuid4().hex[:8]}"

    def create_job_or_get(
        self,
        queue_name: str,
        payload: dict[str, Any],
        job_id: Optional[str] = None,
        priority: int = 0,
        delay: float = 0.0,
        max_attempts: int = 1,
    ) -> tuple[Job, bool]:
        """Admit a job, or return the existing one with the same id.

        Args:
            queue_name: The queue (task kind) to place the job in.
            payload: The job payload data.
            job_id: Explicit admission id; generated when omitted.
            priority: Higher values run first.
            delay: Seconds before the job becomes eligible.
            max_attempts: Attempt budget (1 means no automatic retry).

        Returns:
            Tuple of (Job, created) where created is False when the id
            was already present.
        """
        if job_id:
            existing = self.get_job(job_id)
            if existing is not None:
                return existing, False
        else:
            job_id = self.generate_job_id(queue_name)

        job = Job(
            id=job_id,
            queue_name=queue_name,
            payload_json=payload,
            priority=priority,
            status=JobStatus.WAITING,
            attempts=0,
            max_attempts=max(1, max_attempts),
            run_at=utcnow() + timedelta(seconds=max(0.0, delay)),
        )

        # A concurrent admission with the same id loses the insert race
        self.db.add(job)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_job(job_id)
            if existing is None:
                raise
            return existing, False

        return job, True

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        return self.db.query(Job).filter(Job.id == job_id).first()

    def lock_queue(self, queue_name: str) -> None:
        """Take the queue's claim lock until the current transaction ends.

        Must be the first statement of the transaction: the lock row
        update blocks other claimers of the queue, so reads that follow
        see every claim committed before it.
        """
        now = utcnow()
        locked = (
            self.db.query(QueueLock)
            .filter(QueueLock.queue_name == queue_name)
            .update({QueueLock.locked_at: now}, synchronize_session=False)
        )
        if locked:
            return

        # First claim of the queue creates its lock row
        self.db.add(QueueLock(queue_name=queue_name, locked_at=now))
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            self.db.query(QueueLock).filter(QueueLock.queue_name == queue_name).update(
                {QueueLock.locked_at: now}, synchronize_session=False
            )

    def claim_job(self, job_id: str, queue_name: Optional[str] = None, concurrency: int = 1) -> bool:
        """Attempt to claim a job for execution.

        This atomically transitions the job from waiting to active.
        Only one worker can successfully claim a job. With
        ``queue_name`` given, the same statement refuses the claim while
        ``concurrency`` jobs of that queue are already active.

        Returns:
            True if successfully claimed, False otherwise.
        """
        query = self.db.query(Job).filter(
            Job.id == job_id,
            Job.status == JobStatus.WAITING,
        )
        if queue_name is not None:
            active = aliased(Job)
            # Aggregated derived table: MySQL refuses a plain subquery on the updated table
            active_jobs = (
                select(func.count().label("active"))
                .where(
                    active.queue_name == queue_name,
                    active.status == JobStatus.ACTIVE,
                )
                .subquery()
            )
            active_count = select(active_jobs.c.active).scalar_subquery()
            query = query.filter(active_count < concurrency)

        now = utcnow()
        result = query.update(
            {
                Job.status: JobStatus.ACTIVE,
                Job.attempts: Job.attempts + 1,
                Job.processed_at: now,
                Job.updated_at: now,
            },
            synchronize_session=False,
        )

        self.db.flush()
        return result > 0

    def claim_next_job(self, queue_name: str, concurrency: int = 1) -> Optional[Job]:
        """Claim the next eligible job from a queue.

        Jobs are selected by priority (highest first), then by
        delay-adjusted arrival. Nothing is claimed while ``concurrency``
        jobs of the queue are already active, in this process or any
        other sharing the ledger: the queue's lock row serialises
        claimers and the claim itself re-checks the active count.

        Returns:
            The claimed Job or None if no job is eligible.
        """
        self.lock_queue(queue_name)

        if self.count_jobs(queue_name, JobStatus.ACTIVE) >= concurrency:
            return None

        query = (
            self.db.query(Job)
            .filter(
                Job.queue_name == queue_name,
                Job.status == JobStatus.WAITING,
                Job.run_at <= utcnow(),
            )
            .order_by(Job.priority.desc(), Job.run_at.asc(), Job.created_at.asc())
        )

        # Try to claim jobs until one succeeds
        for job in query.limit(10).all():
            if self.claim_job(job.id, queue_name, concurrency):
                self.db.refresh(job)
                return job

        return None

    def next_run_at(self, queue_name: str):
        """Earliest run_at among waiting jobs of the queue, or None."""
        job = (
            self.db.query(Job)
            .filter(Job.queue_name == queue_name, Job.status == JobStatus.WAITING)
            .order_by(Job.run_at.asc())
            .first()
        )
        return job.run_at if job else None

    def complete_job(
        self,
        job_id: str,
        result: Optional[dict[str, Any]] = None,
    ) -> None:
        """Mark a job as completed and store its return value."""
        now = utcnow()
        self.db.query(Job).filter(Job.id == job_id).update(
            {
                Job.status: JobStatus.COMPLETED,
                Job.return_value: result,
                Job.failed_reason: None,
                Job.finished_at: now,
                Job.updated_at: now,
            },
            synchronize_session=False,
        )
        self.db.flush()

    def fail_job(
        self,
        job_id: str,
        error: Union[str, Exception],
        retryable: bool = False,
        result: Optional[dict[str, Any]] = None,
        include_traceback: bool = False,
        client_error: bool = False,
    ) -> Optional[str]:
        """Mark a job as failed, or reschedule it when attempts remain.

        A retryable failure with attempts left goes back to waiting with
        an exponential backoff. Everything else is terminal.

        Args:
            job_id: The job ID.
            error: The error message or exception.
            retryable: Whether the failure is transient.
            result: Partial outcome returned alongside the error.
            include_traceback: Whether to include traceback in error.
            client_error: Whether the job's own input caused the failure.

        Returns:
            The resulting status, or None if the job does not exist.
        """
        job = self.get_job(job_id)
        if job is None:
            return None

        # Ensure we have fresh data from DB
        self.db.refresh(job)

        error_str = self.serialize_error(error, include_traceback)
        now = utcnow()

        if self.backoff.should_retry(retryable, job.attempts, job.max_attempts):
            delay = self.backoff.get_delay(job.attempts)
            status = JobStatus.WAITING
            updates = {
                Job.status: status,
                Job.failed_reason: error_str,
                Job.retryable: retryable,
                Job.client_error: client_error,
                Job.run_at: now + timedelta(seconds=delay),
                Job.updated_at: now,
            }
        else:
            status = JobStatus.FAILED
            updates = {
                Job.status: status,
                Job.failed_reason: error_str,
                Job.retryable: retryable,
                Job.client_error: client_error,
                Job.return_value: result,
                Job.finished_at: now,
                Job.updated_at: now,
            }

        self.db.query(Job).filter(Job.id == job_id).update(
            updates,
            synchronize_session=False,
        )
        self.db.flush()
        return status

    def serialize_error(
        self,
        error: Union[str, Exception],
        include_traceback: bool = False,
    ) -> str:
        """Serialize an error to a string suitable for storage.

        Args:
            error: The error message or exception.
            include_traceback: Whether to include traceback.

        Returns:
            Serialized error string (truncated if too long).
        """
        if isinstance(error, str):
            error_str = error
        elif isinstance(error, Exception):
            if include_traceback:
                error_str = traceback.format_exc()
            else:
                error_str = f"{type(error).__name__}: {error}"
        else:
            error_str = str(error)

        if len(error_str) > MAX_ERROR_LENGTH:
            error_str = error_str[: MAX_ERROR_LENGTH - 3] + "..."

        return error_str

    def list_jobs(
        self,
        queue_name: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> list[Job]:
        """List jobs with optional filtering, newest first."""
        query = self.db.query(Job)

        if queue_name:
            query = query.filter(Job.queue_name == queue_name)
        if status:
            query = query.filter(Job.status == status)

        query = query.order_by(Job.created_at.desc())

        return query.limit(limit).all()

    def count_jobs(
        self,
        queue_name: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        """Count jobs with optional filtering."""
        query = self.db.query(Job)

        if queue_name:
            query = query.filter(Job.queue_name == queue_name)
        if status:
            query = query.filter(Job.status == status)

        return query.count()

    def stats(self, queue_name: str) -> dict[str, int]:
        """Job counts by state for one queue."""
        counts = {status: self.count_jobs(queue_name, status) for status in sorted(VALID_STATUSES)}
        counts["delayed"] = (
            self.db.query(Job)
            .filter(
                Job.queue_name == queue_name,
                Job.status == JobStatus.WAITING,
                Job.run_at > utcnow(),
            )
            .count()
        )
        counts["total"] = sum(counts[s] for s in VALID_STATUSES)
        return counts

    def clear_jobs(self, queue_name: str, state: str) -> int:
        """Remove jobs of a queue by state.

        ``all`` removes waiting, completed and failed jobs; active jobs
        are never removed.

        Raises:
            ValueError: If the state is not clearable.
        """
        if state not in CLEARABLE_STATES:
            raise ValueError(
                f"Invalid state '{state}'. Use: waiting, failed, completed, or all"
            )

        if state == "all":
            statuses = [JobStatus.WAITING, JobStatus.COMPLETED, JobStatus.FAILED]
        else:
            statuses = [state]

        result = (
            self.db.query(Job)
            .filter(Job.queue_name == queue_name, Job.status.in_(statuses))
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return result

    def prune_finished(
        self,
        queue_name: str,
        keep_completed: int = 10,
        keep_failed: int = 50,
    ) -> int:
        """Delete finished jobs beyond the retention counts.

        Returns:
            Number of jobs deleted.
        """
        deleted = 0
        for status, keep in ((JobStatus.COMPLETED, keep_completed), (JobStatus.FAILED, keep_failed)):
            stale_ids = [
                row.id
                for row in self.db.query(Job.id)
                .filter(Job.queue_name == queue_name, Job.status == status)
                .order_by(Job.finished_at.desc(), Job.created_at.desc())
                .offset(keep)
                .all()
            ]
            if stale_ids:
                deleted += (
                    self.db.query(Job)
                    .filter(Job.id.in_(stale_ids))
                    .delete(synchronize_session=False)
                )

        self.db.flush()
        return deleted

    def recover_interrupted(self, queue_name: Optional[str] = None) -> int:
        """Return active jobs to waiting after a worker restart.

        The interrupted job is delivered again; handlers rely on their
        own idempotency guards to avoid repeating a visible action.

        Returns:
            Number of jobs recovered.
        """
        now = utcnow()
        query = self.db.query(Job).filter(Job.status == JobStatus.ACTIVE)
        if queue_name:
            query = query.filter(Job.queue_name == queue_name)

        result = query.update(
            {
                Job.status: JobStatus.WAITING,
                Job.run_at: now,
                Job.updated_at: now,
            },
            synchronize_session=False,
        )
        self.db.flush()
        return result
