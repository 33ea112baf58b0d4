"""API dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from outreach_core.domain.services.job_queue import JobQueue
from outreach_core.infra.db import get_sync_session_factory
from outreach_core.infrastructure.dispatch import CeleryDispatcher


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_dispatcher() -> CeleryDispatcher:
    """Get the worker wake-up dispatcher."""
    return CeleryDispatcher()


def get_job_queue(
    db: Annotated[Session, Depends(get_db)],
    dispatcher: Annotated[CeleryDispatcher, Depends(get_dispatcher)],
) -> JobQueue:
    """Get the job queue bound to the request's session."""
    return JobQueue(db, dispatcher=dispatcher)


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
DispatcherDep = Annotated[CeleryDispatcher, Depends(get_dispatcher)]
JobQueueDep = Annotated[JobQueue, Depends(get_job_queue)]
