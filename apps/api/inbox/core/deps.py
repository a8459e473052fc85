"""FastAPI dependencies for database access, the current user and shared services."""

from typing import Generator
from uuid import UUID

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from inbox.db.session import SessionLocal
from inbox.services.integration_connection_service import (
    IntegrationConnectionService,
    build_integration_connection_service,
)
from inbox.services.sink_project_cache import ProjectCache


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(request: Request) -> UUID:
    """
    Return the authenticated user id.

    Authentication happens upstream (gateway or middleware), which sets
    ``request.state.user_id``.

    Raises:
        HTTPException 401: No authenticated user on the request
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return UUID(str(user_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Not authenticated")


def get_connection_service(request: Request) -> IntegrationConnectionService:
    service = getattr(request.app.state, "connection_service", None)
    if service is None:
        service = build_integration_connection_service()
        request.app.state.connection_service = service
    return service


def get_project_cache(request: Request) -> ProjectCache:
    cache = getattr(request.app.state, "project_cache", None)
    if cache is None:
        cache = ProjectCache()
        request.app.state.project_cache = cache
    return cache
