"""Observability package for logging."""

from outreach_core.observability.logging import (
    JsonFormatter,
    StructuredLogger,
    TaskContext,
    configure_logging,
    get_logger,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "TaskContext",
    "get_logger",
    "configure_logging",
]
