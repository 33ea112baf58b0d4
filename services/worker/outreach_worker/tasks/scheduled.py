"""Scheduled sweep tasks.

Celery beat fires ``scheduler.tick`` at the nominal interval of a kind;
the tick delays the actual sweep by a random jitter so runs do not land
on a fixed grid. The sweep admits one job into the kind's queue and wakes
the drain, which runs it under the queue's concurrency limit.
"""

import logging
from typing import Optional

from outreach_worker.celery_app import app
from outreach_worker.scheduler import Scheduler

logger = logging.getLogger(__name__)

SCHEDULED_KINDS = ("inbox_poll", "status_check")

_scheduler: Optional[Scheduler] = None


def get_scheduler() -> Scheduler:
    """Get the process-wide scheduler (singleton)."""
    global _scheduler
    if _scheduler is None:
        from outreach_core.config import get_settings

        _scheduler = Scheduler(jitter_seconds=get_settings().schedule_jitter_seconds)
    return _scheduler


@app.task(
    name="scheduler.tick",
    bind=True,
    max_retries=0,
    acks_late=False,
)
def tick(self, kind: str) -> dict:
    """Schedule one sweep of ``kind`` after a random jitter."""
    if kind not in SCHEDULED_KINDS:
        return {"status": "error", "error": f"Kind is not scheduled: {kind}", "kind": kind}

    countdown = get_scheduler().jitter()
    run_sweep.apply_async(kwargs={"kind": kind}, countdown=countdown)
    logger.info(f"Scheduled {kind} sweep in {countdown:.0f}s")
    return {"status": "scheduled", "kind": kind, "countdown": countdown}


def run_scheduled_job(kind: str) -> dict:
    """Admit one job of ``kind`` and wake its queue.

    The job runs through the kind's drain like any other, so it counts
    against the queue's concurrency. Skipped when a job of the kind is
    already waiting or active.
    """
    from outreach_core.domain.models import JobStatus
    from outreach_core.domain.services.job_queue import JobQueue
    from outreach_core.domain.services.jobs import JobService
    from outreach_core.infra.db import get_sync_session_factory
    from outreach_core.infrastructure.dispatch import CeleryDispatcher

    session = get_sync_session_factory()()
    try:
        queue = JobQueue(session, dispatcher=CeleryDispatcher(app))
        stats = queue.stats(kind)
        if stats[JobStatus.WAITING] or stats[JobStatus.ACTIVE]:
            logger.info(f"{kind} job already queued or running, skipping scheduled sweep")
            return {"status": "skipped", "kind": kind, "reason": "already_queued"}

        handle = queue.enqueue(kind, {}, job_id=JobService.generate_job_id(f"scheduled_{kind}"))
        return {"status": "queued", "kind": kind, "job_id": handle.job_id}
    finally:
        session.close()


@app.task(
    name="scheduler.run_sweep",
    bind=True,
    max_retries=0,
    acks_late=False,
)
def run_sweep(self, kind: str) -> dict:
    """Run one scheduled sweep unless the previous one is still running."""
    try:
        outcome = get_scheduler().try_run(kind, lambda: run_scheduled_job(kind))
    except Exception as e:
        logger.error(f"Scheduled {kind} sweep failed: {e}", exc_info=True)
        return {"status": "error", "error": str(e), "kind": kind}

    if not outcome.ran:
        return {"status": "skipped", "kind": kind, "reason": "sweep_running"}
    return outcome.result
