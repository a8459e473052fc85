"""Provider sync job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from inbox.core.errors import RecoverableError
from inbox.core.structured_logging import build_log_context
from inbox.db.enums import IntegrationProviderKind, JobType
from inbox.integrations.base import ProviderAdapter
from inbox.integrations.registry import resolve_adapter
from inbox.services import third_party_item_service
from inbox.services.integration_connection_service import (
    IntegrationConnectionService,
    build_integration_connection_service,
)
from inbox.services.upsert import ItemCreationResult

logger = logging.getLogger(__name__)


async def run_sync(
    db: Session,
    adapter: ProviderAdapter,
    user_id: UUID,
    *,
    connection_service: IntegrationConnectionService,
    job_id: UUID | str | None = None,
) -> list[ItemCreationResult]:
    """
    Run one sync pass and own its transaction.

    - success: clear the last sync failure and commit
    - RecoverableError: record the failure, commit what was done, re-raise
    - anything else: roll back everything, record the failure, re-raise
    """
    provider_kind = adapter.provider_kind
    log_context = build_log_context(
        user_id=user_id, provider_kind=provider_kind.value, job_id=job_id
    )

    connection_service.start_sync(db, user_id, provider_kind)
    db.commit()

    try:
        results = await third_party_item_service.sync_items(
            db, adapter, user_id, connection_service=connection_service
        )
    except RecoverableError as exc:
        connection_service.error_sync(db, user_id, provider_kind, str(exc))
        db.commit()
        logger.warning(
            "Recoverable %s sync failure for user %s: %s",
            provider_kind.value,
            user_id,
            exc,
            extra=log_context,
        )
        raise
    except Exception as exc:
        db.rollback()
        connection_service.error_sync(
            db, user_id, provider_kind, f"Unexpected error while syncing: {exc}"
        )
        db.commit()
        logger.exception(
            "Unexpected %s sync failure for user %s",
            provider_kind.value,
            user_id,
            extra=log_context,
        )
        raise

    connection_service.reset_error_sync(db, user_id, provider_kind)
    db.commit()
    logger.info(
        "%s sync complete for user %s changed=%s",
        provider_kind.value,
        user_id,
        len(results),
        extra=log_context,
    )
    return results


def _parse_payload(job, job_type: JobType) -> tuple[UUID, IntegrationProviderKind]:
    payload = job.payload or {}
    user_id_raw = payload.get("user_id")
    if not user_id_raw:
        raise ValueError(f"Missing user_id in {job_type.value} payload")
    try:
        user_id = UUID(str(user_id_raw))
    except ValueError as exc:
        raise ValueError(f"Invalid user_id in {job_type.value} payload") from exc

    provider_raw = payload.get("provider_kind")
    if not provider_raw:
        raise ValueError(f"Missing provider_kind in {job_type.value} payload")
    try:
        provider_kind = IntegrationProviderKind(str(provider_raw))
    except ValueError as exc:
        raise ValueError(f"Invalid provider_kind in {job_type.value} payload") from exc
    return user_id, provider_kind


async def process_sync_notifications(db, job) -> None:
    """
    Sync a notification provider for a single user.

    Payload:
      - user_id (required): target user UUID
      - provider_kind (required): e.g. "github"
    """
    user_id, provider_kind = _parse_payload(job, JobType.SYNC_NOTIFICATIONS)
    adapter = resolve_adapter(provider_kind)
    await run_sync(
        db,
        adapter,
        user_id,
        connection_service=build_integration_connection_service(),
        job_id=getattr(job, "id", None),
    )


async def process_sync_tasks(db, job) -> None:
    """
    Sync a task provider for a single user.

    Payload:
      - user_id (required): target user UUID
      - provider_kind (required): e.g. "ticktick"
    """
    user_id, provider_kind = _parse_payload(job, JobType.SYNC_TASKS)
    adapter = resolve_adapter(provider_kind)
    if not adapter.is_task_source:
        raise ValueError(f"{provider_kind.value} is not a task provider")
    await run_sync(
        db,
        adapter,
        user_id,
        connection_service=build_integration_connection_service(),
        job_id=getattr(job, "id", None),
    )
