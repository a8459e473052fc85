"""Structured logging helpers."""

import logging
from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    provider_kind: str | None = None,
    connection_id: UUID | str | None = None,
    job_id: UUID | str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict suitable for ``extra=``."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if provider_kind:
        context["provider_kind"] = str(provider_kind)
    if connection_id:
        context["connection_id"] = str(connection_id)
    if job_id:
        context["job_id"] = str(job_id)
    if request_id:
        context["request_id"] = request_id
    return context


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
