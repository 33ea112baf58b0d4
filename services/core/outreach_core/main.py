"""Outreach Core API - Main Application."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from outreach_core.api.routes import connect as connect_routes
from outreach_core.api.routes import extract as extract_routes
from outreach_core.api.routes import inbox as inbox_routes
from outreach_core.api.routes import reply as reply_routes
from outreach_core.api.routes import status as status_routes
from outreach_core.config import get_settings
from outreach_core.infra.db import create_schema
from outreach_core.observability.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="outreach-core",
    )
    create_schema()
    app.state.settings = settings
    yield
    # Shutdown


app = FastAPI(
    title="Outreach Core API",
    description="Queued browser automation for connection requests, replies and inbox polling",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with per-field details."""
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        details.append(f"{location}: {error['msg']}" if location else error["msg"])

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "success": False,
                "error": "Validation failed",
                "details": details,
                "target": None,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )


# Include API routers
app.include_router(connect_routes.router)
app.include_router(extract_routes.router)
app.include_router(inbox_routes.router)
app.include_router(reply_routes.router)
app.include_router(status_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "outreach-core"}


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "Outreach Core API",
        "version": "0.1.0",
        "status": "running",
    }
