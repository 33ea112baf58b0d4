"""API routes."""

from outreach_core.api.routes import connect, extract, inbox, reply, status

__all__ = ["connect", "extract", "inbox", "reply", "status"]
