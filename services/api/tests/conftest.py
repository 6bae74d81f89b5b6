from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import ewp_api.models  # noqa: F401
from ewp_api.core.config import get_settings
from ewp_api.models.base import Base
from ewp_api.models.enums import EventStatus, MemberStatus, WorkspaceRole, WorkspaceStatus
from ewp_api.models.event import Event
from ewp_api.models.workspace import TeamMember, Workspace


@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(_type_, _compiler, **_kwargs):
    return "JSON"


@compiles(INET, "sqlite")
def _compile_inet_sqlite(_type_, _compiler, **_kwargs):
    return "TEXT"


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class Seed:
    """测试数据构造器。"""

    @staticmethod
    def event(
        db: Session,
        *,
        organizer_id: UUID | None = None,
        end_date: datetime | None = None,
        status: str = EventStatus.PUBLISHED,
        name: str = "Spring Hackathon",
    ) -> Event:
        end = end_date or NOW + timedelta(days=7)
        item = Event(
            id=uuid4(),
            name=name,
            organizer_id=organizer_id or uuid4(),
            start_date=end - timedelta(days=2),
            end_date=end,
            status=status,
        )
        db.add(item)
        db.flush()
        return item

    @staticmethod
    def workspace(
        db: Session,
        event_item: Event,
        *,
        status: str = WorkspaceStatus.ACTIVE,
        retention_period_days: int | None = None,
        dissolved_at: datetime | None = None,
    ) -> Workspace:
        settings = {} if retention_period_days is None else {"retention_period_days": retention_period_days}
        item = Workspace(
            id=uuid4(),
            event_id=event_item.id,
            name=f"{event_item.name} Workspace",
            status=status,
            settings=settings,
            dissolved_at=dissolved_at,
        )
        db.add(item)
        db.flush()
        return item

    @staticmethod
    def member(
        db: Session,
        workspace: Workspace,
        *,
        user_id: UUID | None = None,
        role: str = WorkspaceRole.GENERAL_VOLUNTEER,
        status: str = MemberStatus.ACTIVE,
        permissions: list[str] | None = None,
        left_at: datetime | None = None,
    ) -> TeamMember:
        item = TeamMember(
            id=uuid4(),
            workspace_id=workspace.id,
            user_id=user_id or uuid4(),
            role=role,
            status=status,
            permissions=permissions,
            joined_at=NOW - timedelta(days=30),
            left_at=left_at,
        )
        db.add(item)
        db.flush()
        return item


@pytest.fixture
def seed() -> type[Seed]:
    return Seed


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def engine():
    get_settings.cache_clear()
    sqlite_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # 关闭 pysqlite 的隐式事务管理，由 SQLAlchemy 显式发出 BEGIN，保证 SAVEPOINT 语义正确。
    @event.listens_for(sqlite_engine, "connect")
    def _disable_implicit_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=sqlite_engine)
    yield sqlite_engine
    Base.metadata.drop_all(bind=sqlite_engine)
    sqlite_engine.dispose()
    get_settings.cache_clear()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


class RecordingNotifier:
    """记录通知调用的替身。"""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.wind_down_calls: list[tuple[UUID, list[UUID]]] = []
        self.incident_calls: list[tuple[UUID, UUID, list[UUID]]] = []

    def notify_wind_down(self, workspace, members) -> None:
        if self.fail:
            raise RuntimeError("notification gateway unavailable")
        self.wind_down_calls.append((workspace.id, [member.user_id for member in members]))

    def notify_security_incident(self, workspace, incident, owners) -> None:
        if self.fail:
            raise RuntimeError("notification gateway unavailable")
        self.incident_calls.append((workspace.id, incident.id, [owner.user_id for owner in owners]))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)
