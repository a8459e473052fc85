"""CLI tools for inbox administration and manual syncs."""

from uuid import UUID

import click

from inbox.core.async_utils import run_async
from inbox.core.config import settings
from inbox.core.errors import InboxError
from inbox.core.structured_logging import configure_logging
from inbox.db.enums import IntegrationProviderKind, JobType
from inbox.db.session import SessionLocal
from inbox.integrations.registry import resolve_adapter
from inbox.jobs.handlers.sync import run_sync
from inbox.services import job_service
from inbox.services.integration_connection_service import build_integration_connection_service

PROVIDER_CHOICE = click.Choice([kind.value for kind in IntegrationProviderKind])


@click.group()
def cli():
    """Universal inbox CLI tools."""
    configure_logging(settings.LOG_LEVEL)


def _sync(user_id: str, provider: str, tasks_only: bool) -> None:
    adapter = resolve_adapter(provider)
    if tasks_only and not adapter.is_task_source:
        click.echo(f"❌ {provider} is not a task provider")
        return

    db = SessionLocal()
    try:
        results = run_async(
            run_sync(
                db,
                adapter,
                UUID(user_id),
                connection_service=build_integration_connection_service(),
            ),
            timeout=settings.SYNC_JOB_TIMEOUT_SECONDS,
        )
        click.echo(f"✓ Synced {provider} for user {user_id}")
        click.echo(f"  Items changed: {len(results)}")
        click.echo(f"  Tasks changed: {sum(1 for r in results if r.task is not None)}")
        click.echo(
            f"  Notifications changed: {sum(1 for r in results if r.notification is not None)}"
        )
    except InboxError as e:
        click.echo(f"❌ Sync failed: {e}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--user-id", required=True, help="User UUID")
@click.option("--provider", required=True, type=PROVIDER_CHOICE, help="Provider kind")
def sync_notifications(user_id: str, provider: str):
    """
    Sync a provider's notifications for one user.

    Example:
        python -m inbox.cli sync-notifications --user-id "..." --provider github
    """
    _sync(user_id, provider, tasks_only=False)


@cli.command()
@click.option("--user-id", required=True, help="User UUID")
@click.option("--provider", required=True, type=PROVIDER_CHOICE, help="Provider kind")
def sync_tasks(user_id: str, provider: str):
    """
    Sync a task provider for one user.

    Example:
        python -m inbox.cli sync-tasks --user-id "..." --provider ticktick
    """
    _sync(user_id, provider, tasks_only=True)


@cli.command()
@click.option("--user-id", required=True, help="User UUID")
@click.option("--provider", required=True, type=PROVIDER_CHOICE, help="Provider kind")
@click.option("--tasks", "tasks_only", is_flag=True, help="Schedule a task sync")
def schedule_sync(user_id: str, provider: str, tasks_only: bool):
    """Enqueue a sync job for the background worker."""
    db = SessionLocal()
    try:
        job = job_service.schedule_sync(
            db,
            UUID(user_id),
            IntegrationProviderKind(provider),
            JobType.SYNC_TASKS if tasks_only else JobType.SYNC_NOTIFICATIONS,
        )
        click.echo(f"✓ Scheduled {job.job_type} job {job.id}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--user-id", required=True, help="Owner user UUID")
@click.option("--connection-id", required=True, help="Integration connection UUID")
def verify_connection(user_id: str, connection_id: str):
    """Verify an integration connection against the OAuth broker."""
    db = SessionLocal()
    service = build_integration_connection_service()
    try:
        status = run_async(
            service.verify(db, UUID(connection_id), UUID(user_id)),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        if status.result is None:
            click.echo(f"❌ Integration connection not found: {connection_id}")
            return
        db.commit()
        click.echo(f"✓ Connection {connection_id} is {status.result.status}")
        if status.result.failure_message:
            click.echo(f"  {status.result.failure_message}")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


@cli.command()
@click.option("--user-id", required=True, help="User UUID")
def sync_oauth_scopes(user_id: str):
    """Refresh the granted OAuth scopes of a user's validated connections."""
    db = SessionLocal()
    service = build_integration_connection_service()
    try:
        refreshed = run_async(
            service.sync_oauth_scopes(db, UUID(user_id)),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
        db.commit()
        click.echo(f"✓ Refreshed scopes of {len(refreshed)} connection(s)")
    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
