"""Pytest configuration and fixtures for Outreach Core tests.

This module provides fixtures for:
- Database: SQLite in-memory ledger and document store
- HTTP client: AsyncClient for FastAPI testing with a mocked dispatcher
- Executors: a scripted browser session and an executor context around it
"""

import random
from collections.abc import AsyncGenerator, Generator
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from browser_fakes import FakeAuth, FakeSession, RecordingSleep
from outreach_core.config import Settings
from outreach_core.domain.models import Base


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Create test settings with safe defaults."""
    from outreach_core.infrastructure.crypto import CryptoService

    return Settings(
        database_url="sqlite+pysqlite:///:memory:",
        celery_broker_url="memory://",
        celery_result_backend="cache+memory://",
        account_email="bot@example.com",
        account_secret="test-secret",
        platform_base_url="https://www.linkedin.com",
        cookies_dir=str(tmp_path / "cookies"),
        artifacts_dir=str(tmp_path / "artifacts"),
        encryption_key=CryptoService.generate_key(),
        log_json=False,
    )


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@pytest.fixture
def document_store(sync_session_factory):
    """SQL document store over the test database."""
    from outreach_core.infrastructure.document_store import SqlDocumentStore

    return SqlDocumentStore(sync_session_factory)


# -----------------------------------------------------------------------------
# Queue Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_dispatcher() -> MagicMock:
    """Dispatcher whose wake-ups are recorded instead of sent."""
    dispatcher = MagicMock()
    dispatcher.wake.return_value = True
    dispatcher.ping.return_value = True
    return dispatcher


@pytest.fixture
def job_queue(db_session, mock_dispatcher, test_settings):
    """Job queue over the test database."""
    from outreach_core.domain.services.job_queue import JobQueue

    return JobQueue(db_session, dispatcher=mock_dispatcher, settings=test_settings)


# -----------------------------------------------------------------------------
# Executor Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def account(test_settings):
    """The operator account from the test settings."""
    from outreach_core.domain.services.credentials import Account

    return Account.from_settings(test_settings)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def fake_session() -> FakeSession:
    """An empty scripted browser session; tests fill in ``pages``."""
    return FakeSession()


@pytest.fixture
def executor_context(account, document_store, test_settings, fake_session, fake_sleep):
    """Executor context wired to the fake session, store and sleep."""
    from outreach_core.domain.services.executors import ExecutorContext
    from outreach_core.domain.services.pacing import PacingPolicy, TypingProfile

    return ExecutorContext(
        account=account,
        auth=FakeAuth(fake_session),
        store=document_store,
        settings=test_settings,
        pacing=PacingPolicy.from_settings(test_settings, sleep=fake_sleep, rng=random.Random(7)),
        typing=TypingProfile(),
    )


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_engine, sync_session_factory, mock_dispatcher) -> FastAPI:
    """Create a FastAPI test application with test settings and DB override."""
    from outreach_core.api.deps import get_db, get_dispatcher
    from outreach_core.main import app

    # Override settings
    app.state.settings = test_settings

    # Override the database dependency to use test database
    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: mock_dispatcher

    yield app

    # Clean up overrides
    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
