"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing Celery tasks without requiring:
- Running Redis/Celery
- A persistent database
- A browser
"""

import os
import sys
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import sessionmaker

# Add worker package to path
worker_path = Path(__file__).parent.parent
sys.path.insert(0, str(worker_path))

# Set test environment variables before importing celery_app
os.environ.setdefault("OUTREACH_CELERY_BROKER_URL", "memory://")
os.environ.setdefault("OUTREACH_CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("OUTREACH_DATABASE_URL", "sqlite+pysqlite:///:memory:")


@pytest.fixture(scope="session")
def celery_config() -> dict[str, Any]:
    """Celery configuration for testing."""
    return {
        "broker_url": "memory://",
        "result_backend": "cache+memory://",
        "task_always_eager": True,
        "task_eager_propagates": True,
    }


@pytest.fixture
def mock_celery_app():
    """Celery app configured for eager execution."""
    from outreach_worker.celery_app import app

    app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
    )
    return app


@pytest.fixture
def session_factory(monkeypatch):
    """In-memory ledger used by the tasks in place of the configured database."""
    from outreach_core.domain.models import Base

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    monkeypatch.setattr("outreach_core.infra.db.get_sync_session_factory", lambda: factory)

    yield factory

    engine.dispose()


@pytest.fixture
def mock_dispatcher(monkeypatch):
    """Dispatcher instance returned wherever the tasks build one."""
    dispatcher = MagicMock()
    dispatcher.wake.return_value = True
    monkeypatch.setattr(
        "outreach_core.infrastructure.dispatch.CeleryDispatcher",
        MagicMock(return_value=dispatcher),
    )
    return dispatcher


@pytest.fixture
def mock_executor(monkeypatch):
    """Executor handler returned for every kind; no browser is launched."""
    handler = AsyncMock(return_value={"status": "completed"})
    monkeypatch.setattr(
        "outreach_core.domain.services.executors.build_context",
        MagicMock(return_value=MagicMock()),
    )
    monkeypatch.setattr(
        "outreach_core.domain.services.executors.build_executor",
        MagicMock(return_value=handler),
    )
    return handler


@pytest.fixture
def enqueue(session_factory):
    """Admit a job directly into the test ledger."""
    from outreach_core.domain.services.job_queue import JobQueue

    def _enqueue(kind: str, payload: dict, job_id: str, delay: float = 0.0) -> None:
        session = session_factory()
        try:
            JobQueue(session).enqueue(kind, payload, job_id=job_id, delay=delay)
        finally:
            session.close()

    return _enqueue


@pytest.fixture
def job_state(session_factory):
    """Read a job's state from the test ledger."""
    from outreach_core.domain.services.job_queue import JobQueue

    def _state(job_id: str):
        session = session_factory()
        try:
            return JobQueue(session).get_state(job_id)
        finally:
            session.close()

    return _state
