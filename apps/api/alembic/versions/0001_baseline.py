"""Baseline migration - connections, items, tasks, notifications and jobs

Revision ID: 0001_baseline
Revises: 
Create Date: 2026-10-19

Creates every table of the universal inbox.
"""
from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create inbox tables."""

    op.execute('CREATE EXTENSION IF NOT EXISTS pgcrypto')  # For gen_random_uuid()

    # ==========================================================================
    # Users
    # ==========================================================================
    op.execute('''
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')

    # ==========================================================================
    # Integration connections
    # ==========================================================================
    op.execute('''
        CREATE TABLE integration_connections (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            connection_id UUID UNIQUE NOT NULL DEFAULT gen_random_uuid(),
            provider_kind VARCHAR(50) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'created',
            failure_message TEXT,
            registered_oauth_scopes JSONB NOT NULL DEFAULT '[]'::jsonb,
            provider_user_id VARCHAR(255),
            last_sync_started_at TIMESTAMPTZ,
            last_sync_failure_message TEXT,
            config JSONB NOT NULL DEFAULT '{}'::jsonb,
            context JSONB,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('''
        CREATE INDEX idx_integration_connections_user_provider
        ON integration_connections(user_id, provider_kind, status)
    ''')

    # ==========================================================================
    # Third party items
    # ==========================================================================
    op.execute('''
        CREATE TABLE third_party_items (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            source_id VARCHAR(255) NOT NULL,
            kind VARCHAR(50) NOT NULL,
            data JSONB NOT NULL,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            integration_connection_id UUID NOT NULL
                REFERENCES integration_connections(id) ON DELETE CASCADE,
            source_item_id UUID REFERENCES third_party_items(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_third_party_items_source
                UNIQUE (source_id, kind, user_id, integration_connection_id)
        )
    ''')
    op.execute('CREATE INDEX idx_third_party_items_user_kind ON third_party_items(user_id, kind)')

    # ==========================================================================
    # Tasks
    # ==========================================================================
    op.execute('''
        CREATE TABLE tasks (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(500) NOT NULL,
            body TEXT NOT NULL DEFAULT '',
            status VARCHAR(20) NOT NULL DEFAULT 'active',
            priority INTEGER NOT NULL DEFAULT 4,
            due_at TIMESTAMPTZ,
            tags JSONB NOT NULL DEFAULT '[]'::jsonb,
            project VARCHAR(255) NOT NULL,
            is_recurring BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            kind VARCHAR(50) NOT NULL,
            source_item_id UUID UNIQUE NOT NULL
                REFERENCES third_party_items(id) ON DELETE CASCADE,
            sink_item_id UUID REFERENCES third_party_items(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_tasks_user_status ON tasks(user_id, status)')
    op.execute('CREATE INDEX idx_tasks_sink_item ON tasks(sink_item_id)')

    # ==========================================================================
    # Notifications
    # ==========================================================================
    op.execute('''
        CREATE TABLE notifications (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(500) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'unread',
            kind VARCHAR(50) NOT NULL,
            source_item_id UUID UNIQUE NOT NULL
                REFERENCES third_party_items(id) ON DELETE CASCADE,
            task_id UUID REFERENCES tasks(id) ON DELETE SET NULL,
            snoozed_until TIMESTAMPTZ,
            last_read_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    ''')
    op.execute('CREATE INDEX idx_notifications_user_status ON notifications(user_id, status)')
    op.execute('CREATE INDEX idx_notifications_user_kind ON notifications(user_id, kind)')

    # ==========================================================================
    # Background jobs
    # ==========================================================================
    op.execute('''
        CREATE TABLE jobs (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            job_type VARCHAR(50) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}'::jsonb,
            run_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            attempts INTEGER NOT NULL DEFAULT 0,
            max_attempts INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            completed_at TIMESTAMPTZ
        )
    ''')
    op.execute('CREATE INDEX idx_jobs_pending ON jobs(status, run_at)')
    op.execute('CREATE INDEX idx_jobs_user ON jobs(user_id, created_at)')


def downgrade() -> None:
    """Drop all inbox tables."""

    # Drop tables in reverse order (respecting foreign keys)
    op.execute('DROP TABLE IF EXISTS jobs')
    op.execute('DROP TABLE IF EXISTS notifications')
    op.execute('DROP TABLE IF EXISTS tasks')
    op.execute('DROP TABLE IF EXISTS third_party_items')
    op.execute('DROP TABLE IF EXISTS integration_connections')
    op.execute('DROP TABLE IF EXISTS users')
