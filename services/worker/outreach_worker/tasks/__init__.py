"""Outreach Worker Tasks."""

# Import all tasks to register them with Celery
from outreach_worker.tasks import queue  # noqa: F401
from outreach_worker.tasks import scheduled  # noqa: F401
