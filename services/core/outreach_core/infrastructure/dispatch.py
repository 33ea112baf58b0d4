"""Queue wake-ups sent to the worker.

Jobs live in the SQL ledger; Celery only carries a ``queue.drain``
message telling the worker that a queue may have eligible work. A lost
wake-up is harmless: the worker's periodic drain picks the job up.
"""

import logging
from functools import lru_cache
from typing import Optional

from celery import Celery

from outreach_core.config import get_settings

logger = logging.getLogger(__name__)

DRAIN_TASK_NAME = "queue.drain"


@lru_cache
def get_celery_app() -> Celery:
    """Get a Celery app instance configured like the worker."""
    settings = get_settings()
    celery_app = Celery(
        "outreach",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
    )
    celery_app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
    )
    return celery_app


class CeleryDispatcher:
    """Sends drain wake-ups to the per-kind worker queues."""

    def __init__(self, celery_app: Optional[Celery] = None):
        self._celery_app = celery_app

    @property
    def celery_app(self) -> Celery:
        if self._celery_app is None:
            self._celery_app = get_celery_app()
        return self._celery_app

    def wake(self, kind: str, countdown: float = 0.0) -> bool:
        """Schedule a drain of ``kind`` after ``countdown`` seconds.

        Returns:
            True if the wake-up was handed to the broker.
        """
        try:
            self.celery_app.send_task(
                DRAIN_TASK_NAME,
                kwargs={"kind": kind},
                queue=kind,
                countdown=max(0.0, countdown),
            )
        except Exception as e:
            # The job is already committed; the periodic drain will find it
            logger.error(f"Error sending wake-up for queue {kind}: {e}", exc_info=True)
            return False
        return True

    def ping(self) -> bool:
        """Check broker connectivity."""
        try:
            with self.celery_app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1)
        except Exception as e:
            logger.warning(f"Broker connectivity check failed: {e}")
            return False
        return True
