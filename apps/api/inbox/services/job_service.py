"""Job service - background job scheduling and bookkeeping."""

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from inbox.db.enums import IntegrationProviderKind, JobStatus, JobType
from inbox.db.models import Job
from inbox.db.types import utcnow


def schedule_job(
    db: Session,
    user_id: UUID,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    """
    job = Job(
        user_id=user_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def schedule_sync(
    db: Session,
    user_id: UUID,
    provider_kind: IntegrationProviderKind,
    job_type: JobType = JobType.SYNC_NOTIFICATIONS,
    run_at: datetime | None = None,
) -> Job:
    return schedule_job(
        db,
        user_id,
        job_type,
        {"user_id": str(user_id), "provider_kind": provider_kind.value},
        run_at=run_at,
    )


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= utcnow(),
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def mark_job_running(db: Session, job: Job) -> Job:
    """Mark a job as running (increment attempts)."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
