"""Celery application configuration for Outreach Worker.

Each task kind has its own queue. Run one worker per kind queue so a
kind never executes two jobs at once; the ledger claim enforces the same
limit independently:

    celery -A outreach_worker.celery_app worker -Q reply --concurrency=1
    celery -A outreach_worker.celery_app worker -Q scheduler --concurrency=1
    celery -A outreach_worker.celery_app beat
"""

import os

from celery import Celery

from outreach_core.config import get_settings
from outreach_core.domain.models import TaskKind

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("OUTREACH_CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("OUTREACH_CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

SCHEDULER_QUEUE = "scheduler"

# Seconds between ledger sweeps that re-send lost wake-ups
DRAIN_SWEEP_INTERVAL = 60.0

app = Celery(
    "outreach_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "outreach_worker.tasks.queue",
        "outreach_worker.tasks.scheduled",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution; jobs are tracked in the ledger, not by broker redelivery
    task_acks_late=False,
    # No time limits: a killed drain could interrupt a send mid-action.
    # Navigation and element waits carry their own timeouts.
    task_soft_time_limit=None,
    task_time_limit=None,
    # Queue routing; queue.drain is sent to the queue named after its kind
    task_routes={
        "queue.drain_all": {"queue": SCHEDULER_QUEUE},
        "scheduler.*": {"queue": SCHEDULER_QUEUE},
    },
    task_default_queue=SCHEDULER_QUEUE,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
)


def build_beat_schedule() -> dict:
    """Periodic triggers derived from settings."""
    settings = get_settings()
    schedule = {
        # Re-send wake-ups for due jobs whose wake-up was lost
        "drain-all-queues": {
            "task": "queue.drain_all",
            "schedule": DRAIN_SWEEP_INTERVAL,
            "args": (),
        },
    }

    if settings.inbox_poll_enabled:
        schedule["inbox-poll-tick"] = {
            "task": "scheduler.tick",
            "schedule": settings.inbox_poll_interval,
            "kwargs": {"kind": TaskKind.INBOX_POLL},
        }

    if settings.status_check_enabled:
        schedule["status-check-tick"] = {
            "task": "scheduler.tick",
            "schedule": settings.status_check_interval,
            "kwargs": {"kind": TaskKind.STATUS_CHECK},
        }

    return schedule


# Beat schedule for periodic tasks
app.conf.beat_schedule = build_beat_schedule()


if __name__ == "__main__":
    app.start()
