"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database session (fresh schema per test)
- User and integration connection factories
- A fake OAuth broker and fake provider adapters
- HTTPX AsyncClient wired to the FastAPI app
"""
import asyncio
import os
import uuid
from typing import AsyncGenerator, Generator

# Point settings at SQLite before any inbox module builds the engine
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["NANGO_SECRET_KEY"] = "test-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inbox.core.deps import (
    get_connection_service,
    get_current_user_id,
    get_db,
    get_project_cache,
)
from inbox.core.errors import UnexpectedError
from inbox.db.base import Base
from inbox.db.enums import (
    IntegrationConnectionStatus,
    IntegrationProviderKind,
    NotificationStatus,
    TaskPriority,
    TaskStatus,
    ThirdPartyItemKind,
)
from inbox.db.models import IntegrationConnection, User
from inbox.integrations.base import BrokerConnection, BrokerCredentials, ProviderAdapter
from inbox.main import app
from inbox.schemas.integration_connection import default_config_for
from inbox.schemas.notification import NotificationDraft
from inbox.schemas.task import ProjectSummary, TaskCreationDefaults, TaskDraft
from inbox.schemas.third_party import ThirdPartyItemCreate
from inbox.services.integration_connection_service import IntegrationConnectionService
from inbox.services.sink_project_cache import ProjectCache

PROVIDER_CONFIG_KEYS = {kind.value: kind.value for kind in IntegrationProviderKind}


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """
    Fresh in-memory database per test.

    pysqlite does not emit BEGIN itself, which breaks SAVEPOINT; the two
    listeners hand transaction control back to SQLAlchemy.
    """
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture(scope="function")
def make_user(db: Session):
    def _make_user(email: str | None = None) -> User:
        user = User(email=email or f"test-{uuid.uuid4().hex[:8]}@test.com")
        db.add(user)
        db.flush()
        return user

    return _make_user


@pytest.fixture(scope="function")
def test_user(make_user) -> User:
    return make_user()


@pytest.fixture(scope="function")
def make_connection(db: Session):
    def _make_connection(
        user: User,
        provider_kind: IntegrationProviderKind = IntegrationProviderKind.GITHUB,
        status: IntegrationConnectionStatus = IntegrationConnectionStatus.VALIDATED,
        config: dict | None = None,
    ) -> IntegrationConnection:
        connection = IntegrationConnection(
            user_id=user.id,
            provider_kind=provider_kind.value,
            status=status.value,
            registered_oauth_scopes=[],
            config=config or default_config_for(provider_kind).model_dump(mode="json"),
        )
        db.add(connection)
        db.flush()
        return connection

    return _make_connection


# =============================================================================
# Broker
# =============================================================================

class FakeBroker:
    """In-memory ConnectionBroker keyed by broker connection handle."""

    def __init__(self) -> None:
        self.connections: dict[uuid.UUID, BrokerConnection] = {}
        self.get_calls: list[tuple[uuid.UUID, str]] = []
        self.deleted: list[tuple[uuid.UUID, str]] = []

    def register(
        self,
        connection: IntegrationConnection,
        *,
        access_token: str = "access-token",
        scope: str = "read write",
        metadata: dict | None = None,
    ) -> BrokerConnection:
        broker_connection = BrokerConnection(
            connection_id=str(connection.connection_id),
            provider_config_key=connection.provider_kind,
            credentials=BrokerCredentials(access_token=access_token, raw={"scope": scope}),
            metadata=metadata,
        )
        self.connections[connection.connection_id] = broker_connection
        return broker_connection

    def forget(self, connection: IntegrationConnection) -> None:
        self.connections.pop(connection.connection_id, None)

    async def get_connection(self, connection_id, provider_config_key):
        self.get_calls.append((connection_id, provider_config_key))
        return self.connections.get(connection_id)

    async def delete_connection(self, connection_id, provider_config_key):
        self.deleted.append((connection_id, provider_config_key))
        self.connections.pop(connection_id, None)


@pytest.fixture(scope="function")
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture(scope="function")
def connection_service(broker: FakeBroker) -> IntegrationConnectionService:
    return IntegrationConnectionService(broker, provider_config_keys=PROVIDER_CONFIG_KEYS)


# =============================================================================
# Provider adapters
# =============================================================================

class FakeNotificationAdapter(ProviderAdapter):
    """
    GitHub-shaped provider with no task concept.

    Records are plain dicts: {"id", "title", "unread"}. A record whose title is
    "boom" fails while building its notification.
    """

    provider_kind = IntegrationProviderKind.GITHUB
    item_kind = ThirdPartyItemKind.GITHUB_NOTIFICATION

    def __init__(self, records: list[dict] | None = None, incremental: bool = False) -> None:
        self.records = list(records or [])
        self.incremental = incremental
        self.fetch_calls = 0
        self.build_notification_calls = 0
        self.fetch_error: Exception | None = None
        self.convert_error_on: dict[str, Exception] = {}
        self.deleted_from_source: list[str] = []

    def is_sync_incremental(self) -> bool:
        return self.incremental

    async def fetch_items(self, access_token, connection, user_id):
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return [dict(record) for record in self.records]

    def into_third_party_item(self, record, *, user_id, integration_connection_id):
        if record["id"] in self.convert_error_on:
            raise self.convert_error_on[record["id"]]
        return ThirdPartyItemCreate(
            source_id=record["id"],
            kind=self.item_kind,
            data=record,
            user_id=user_id,
            integration_connection_id=integration_connection_id,
        )

    def mark_as_done(self, data):
        return {**data, "unread": False}

    def build_notification(self, item, task, connection):
        self.build_notification_calls += 1
        if item.data["title"] == "boom":
            raise UnexpectedError("malformed record")
        return NotificationDraft(
            title=item.data["title"],
            status=NotificationStatus.UNREAD if item.data["unread"] else NotificationStatus.READ,
        )

    async def delete_notification_from_source(self, access_token, item):
        self.deleted_from_source.append(item.source_id)


class FakeTaskAdapter(ProviderAdapter):
    """
    TickTick-shaped task provider, also usable as a sink.

    Records are plain dicts: {"id", "title", "done", "project"}. Every active
    task gets a notification.
    """

    provider_kind = IntegrationProviderKind.TICKTICK
    item_kind = ThirdPartyItemKind.TICKTICK_ITEM

    def __init__(self, records: list[dict] | None = None) -> None:
        self.records = list(records or [])
        self.fetch_calls = 0
        self.build_task_calls = 0
        self.projects: list[ProjectSummary] = [ProjectSummary(source_id="inbox", name="Inbox")]
        self.created_projects: list[str] = []
        self.created_tasks: list = []
        self.completed: list[str] = []
        self.uncompleted: list[str] = []
        self.deleted: list[str] = []
        self.updates: list[tuple[str, dict]] = []
        self.defaults = TaskCreationDefaults()

    @property
    def is_task_source(self) -> bool:
        return True

    async def fetch_items(self, access_token, connection, user_id):
        self.fetch_calls += 1
        return [dict(record) for record in self.records]

    def into_third_party_item(self, record, *, user_id, integration_connection_id):
        return ThirdPartyItemCreate(
            source_id=record["id"],
            kind=self.item_kind,
            data=record,
            user_id=user_id,
            integration_connection_id=integration_connection_id,
        )

    def mark_as_done(self, data):
        return {**data, "done": True}

    def task_creation_defaults(self, connection):
        return self.defaults

    def build_task(self, item):
        self.build_task_calls += 1
        return TaskDraft(
            title=item.data["title"],
            status=TaskStatus.DONE if item.data.get("done") else TaskStatus.ACTIVE,
            priority=TaskPriority(item.data["priority"]) if item.data.get("priority") else None,
            project=item.data.get("project"),
        )

    def build_notification(self, item, task, connection):
        if task is None:
            return None
        return NotificationDraft(title=task.title)

    async def list_projects(self, access_token):
        await asyncio.sleep(0)
        return list(self.projects)

    async def create_project(self, access_token, name):
        await asyncio.sleep(0)
        project = ProjectSummary(source_id=f"project-{len(self.projects)}", name=name)
        self.projects.append(project)
        self.created_projects.append(name)
        return project

    async def create_task(self, access_token, creation):
        self.created_tasks.append(creation)
        return {
            "id": f"sink-{len(self.created_tasks)}",
            "title": creation.title,
            "done": False,
            "project": creation.project.name,
        }

    async def update_task(self, access_token, item, patch):
        self.updates.append((item.source_id, patch))

    async def complete_task(self, access_token, item):
        self.completed.append(item.source_id)

    async def uncomplete_task(self, access_token, item):
        self.uncompleted.append(item.source_id)

    async def delete_task(self, access_token, item):
        self.deleted.append(item.source_id)


@pytest.fixture(scope="function")
def notification_adapter() -> FakeNotificationAdapter:
    return FakeNotificationAdapter()


@pytest.fixture(scope="function")
def task_adapter() -> FakeTaskAdapter:
    return FakeTaskAdapter()


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def project_cache() -> ProjectCache:
    return ProjectCache(ttl_seconds=60)


@pytest.fixture(scope="function")
def current_user(test_user: User) -> dict:
    """Mutable holder for the user the API client authenticates as."""
    return {"id": test_user.id}


@pytest.fixture(scope="function")
async def client(
    db: Session,
    connection_service: IntegrationConnectionService,
    project_cache: ProjectCache,
    current_user: dict,
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient authenticated as ``current_user``."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_id] = lambda: current_user["id"]
    app.dependency_overrides[get_connection_service] = lambda: connection_service
    app.dependency_overrides[get_project_cache] = lambda: project_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
