"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from inbox.db.enums import JobType
from inbox.jobs.handlers import sync

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.SYNC_NOTIFICATIONS.value: sync.process_sync_notifications,
    JobType.SYNC_TASKS.value: sync.process_sync_tasks,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
