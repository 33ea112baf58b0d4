"""Database infrastructure for Outreach Core."""

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from outreach_core.config import get_settings
from outreach_core.domain.models import Base


def get_sync_engine():
    """Get synchronous database engine."""
    settings = get_settings()
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
        connect_args=connect_args,
    )


_sync_engine = None
_sync_session_factory = None


def get_sync_session_factory() -> sessionmaker[Session]:
    """Get synchronous session factory (singleton)."""
    global _sync_engine, _sync_session_factory
    if _sync_session_factory is None:
        _sync_engine = get_sync_engine()
        _sync_session_factory = sessionmaker(
            bind=_sync_engine,
            autocommit=False,
            autoflush=False,
        )
    return _sync_session_factory


def create_schema() -> None:
    """Create the ledger and document tables if they do not exist."""
    get_sync_session_factory()
    Base.metadata.create_all(bind=_sync_engine)
