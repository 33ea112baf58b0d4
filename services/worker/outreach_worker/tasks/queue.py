"""Queue drain tasks.

These tasks run jobs from the SQL ledger. A ``queue.drain`` message is
only a wake-up: the task claims whatever is eligible for its kind, runs
the kind's executor, and records each outcome in the ledger. Task
failures never propagate into Celery.
"""

import asyncio
import logging
import multiprocessing
from typing import Any

from celery.signals import worker_process_init, worker_ready, worker_shutting_down

from outreach_worker.celery_app import app

logger = logging.getLogger(__name__)

# Created at import, before the prefork pool forks, so pool children share
# it and see the stop set by the parent's shutdown signal.
_stop_requested = multiprocessing.Event()


def stop_requested() -> bool:
    """True once the worker has begun a warm shutdown."""
    return _stop_requested.is_set()


@worker_shutting_down.connect
def _request_stop(**kwargs: Any) -> None:
    logger.info("Worker shutting down, drains stop claiming new jobs")
    _stop_requested.set()


@worker_process_init.connect
def _configure_process_logging(**kwargs: Any) -> None:
    from outreach_core.config import get_settings
    from outreach_core.observability.logging import configure_logging

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="outreach-worker",
    )


@worker_ready.connect
def _recover_interrupted(**kwargs: Any) -> None:
    from outreach_core.infra.db import create_schema

    create_schema()
    result = recover_and_wake()
    logger.info(f"Worker ready: {result}")


def recover_and_wake() -> dict:
    """Return jobs left active by a dead worker to waiting and wake their queues."""
    from outreach_core.domain.models import ALL_TASK_KINDS
    from outreach_core.domain.services.job_queue import JobQueue
    from outreach_core.infra.db import get_sync_session_factory
    from outreach_core.infrastructure.dispatch import CeleryDispatcher

    session = get_sync_session_factory()()
    try:
        dispatcher = CeleryDispatcher(app)
        queue = JobQueue(session, dispatcher=dispatcher)
        recovered = queue.recover_interrupted()

        woken = []
        for kind in ALL_TASK_KINDS:
            next_in = queue.seconds_until_next(kind)
            if next_in is not None:
                dispatcher.wake(kind, countdown=next_in)
                woken.append(kind)

        return {"recovered": recovered, "woken": woken}
    finally:
        session.close()


@app.task(
    name="queue.drain",
    bind=True,
    max_retries=0,  # Failures are recorded in the ledger, never retried by Celery
    acks_late=False,
)
def drain(self, kind: str) -> dict:
    """Run eligible jobs of one kind until none remain.

    Args:
        kind: Task kind, which is also the queue name.

    Returns:
        Dictionary with status, processed count and the seconds until
        the next delayed job (None when the queue is empty).
    """
    # Import here to avoid circular imports
    from outreach_core.domain.models import ALL_TASK_KINDS
    from outreach_core.domain.services.executors import build_context, build_executor
    from outreach_core.domain.services.job_queue import JobQueue
    from outreach_core.infra.db import get_sync_session_factory
    from outreach_core.infrastructure.dispatch import CeleryDispatcher

    if kind not in ALL_TASK_KINDS:
        return {"status": "error", "error": f"Unknown task kind: {kind}", "kind": kind}

    session = get_sync_session_factory()()
    try:
        dispatcher = CeleryDispatcher(app)
        queue = JobQueue(session, dispatcher=dispatcher)
        executor = build_executor(kind, build_context())

        processed = asyncio.run(
            queue.process(kind, executor, concurrency=1, should_stop=stop_requested)
        )

        next_in = queue.seconds_until_next(kind)
        if next_in is not None and (next_in > 0 or processed) and not stop_requested():
            dispatcher.wake(kind, countdown=next_in)

        logger.info(f"Drained {processed} jobs from {kind}")
        return {"status": "ok", "kind": kind, "processed": processed, "next_in": next_in}

    except Exception as e:
        session.rollback()
        logger.error(f"Drain of {kind} failed: {e}", exc_info=True)
        return {"status": "error", "error": str(e), "kind": kind}

    finally:
        session.close()


@app.task(
    name="queue.drain_all",
    bind=True,
    max_retries=0,
    acks_late=False,
)
def drain_all(self) -> dict:
    """Wake every queue that has a due job.

    Covers wake-ups lost between admission and the broker.
    """
    from outreach_core.domain.models import ALL_TASK_KINDS
    from outreach_core.domain.services.job_queue import JobQueue
    from outreach_core.infra.db import get_sync_session_factory
    from outreach_core.infrastructure.dispatch import CeleryDispatcher

    session = get_sync_session_factory()()
    try:
        dispatcher = CeleryDispatcher(app)
        queue = JobQueue(session, dispatcher=dispatcher)

        woken = []
        for kind in ALL_TASK_KINDS:
            if queue.seconds_until_next(kind) == 0:
                dispatcher.wake(kind)
                woken.append(kind)

        return {"status": "ok", "woken": woken}

    except Exception as e:
        logger.error(f"Drain sweep failed: {e}", exc_info=True)
        return {"status": "error", "error": str(e)}

    finally:
        session.close()
