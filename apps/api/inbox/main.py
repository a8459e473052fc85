"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from inbox.core.config import settings
from inbox.core.errors import (
    ForbiddenError,
    InboxError,
    InvalidInputError,
    ItemNotFoundError,
    RecoverableError,
    UnexpectedError,
    UnsupportedActionError,
)
from inbox.core.structured_logging import configure_logging
from inbox.db.session import engine
from inbox.routers import integration_connections, notifications, tasks

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Universal Inbox API",
    description="Reconciles provider notifications and tasks into one inbox",
    version=settings.VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
)

# ============================================================================
# Error handling
# ============================================================================

_ERROR_STATUS_CODES: dict[type[InboxError], int] = {
    ForbiddenError: 403,
    ItemNotFoundError: 404,
    InvalidInputError: 400,
    UnsupportedActionError: 400,
    RecoverableError: 503,
    UnexpectedError: 500,
}


@app.exception_handler(InboxError)
async def inbox_error_handler(request: Request, exc: InboxError) -> JSONResponse:
    status_code = next(
        (code for error_type, code in _ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# ============================================================================
# Routers
# ============================================================================

app.include_router(integration_connections.router)
app.include_router(tasks.router)
app.include_router(notifications.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
