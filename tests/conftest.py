"""Pytest fixtures for absence engine tests."""

from __future__ import annotations

from datetime import date, timedelta
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from cryptography.fernet import Fernet
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from absence_engine.events import AsyncEventEmitter, DomainEvent
from absence_engine.models import Base, Employee, Organisation
from absence_engine.services.encryption import FieldCodec
from absence_engine.services.sickness_case_service import SicknessCaseService

# In-memory SQLite shared across sessions through a single pooled connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TODAY = date(2024, 3, 4)


@pytest.fixture
async def engine():
    """Create test database engine with SAVEPOINT support."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def codec() -> FieldCodec:
    return FieldCodec(Fernet.generate_key())


@pytest.fixture
def emitter() -> AsyncEventEmitter:
    return AsyncEventEmitter()


@pytest.fixture
def recorded_events(emitter: AsyncEventEmitter) -> list[DomainEvent]:
    """Every event dispatched by the shared emitter."""
    events: list[DomainEvent] = []

    async def record(event: DomainEvent) -> None:
        events.append(event)

    emitter.on_all(record)
    return events


@pytest.fixture
async def organisation(session: AsyncSession) -> Organisation:
    """Create a test organisation with a 28 day long-term threshold."""
    org = Organisation(
        id=uuid4(),
        name="Acme Ltd",
        slug=f"acme-{uuid4().hex[:8]}",
        settings={"absenceTriggerThresholds": {"longTermDays": 28}},
    )
    session.add(org)
    await session.flush()
    return org


@pytest.fixture
async def other_organisation(session: AsyncSession) -> Organisation:
    org = Organisation(id=uuid4(), name="Other plc", slug=f"other-{uuid4().hex[:8]}")
    session.add(org)
    await session.flush()
    return org


@pytest.fixture
async def manager(session: AsyncSession, organisation: Organisation) -> Employee:
    person = Employee(
        id=uuid4(),
        organisation_id=organisation.id,
        first_name="Morgan",
        last_name="Reid",
        email="morgan.reid@example.com",
    )
    session.add(person)
    await session.flush()
    return person


@pytest.fixture
async def employee(
    session: AsyncSession, organisation: Organisation, manager: Employee
) -> Employee:
    """Create an employee reporting to the manager."""
    person = Employee(
        id=uuid4(),
        organisation_id=organisation.id,
        first_name="Sam",
        last_name="Taylor",
        email="sam.taylor@example.com",
        manager_id=manager.id,
    )
    session.add(person)
    await session.flush()
    return person


@pytest.fixture
def actor_id():
    return uuid4()


@pytest.fixture
def case_service(
    session: AsyncSession, emitter: AsyncEventEmitter, codec: FieldCodec
) -> SicknessCaseService:
    return SicknessCaseService(session, emitter=emitter, codec=codec)


@pytest.fixture
def open_case(case_service, organisation, employee, actor_id):
    """Factory that opens a case for the test employee."""

    async def _open(
        start: date = TODAY - timedelta(days=2),
        end: date | None = None,
        absence_type: str = "respiratory",
        notes: str | None = None,
        employee_id=None,
        today: date = TODAY,
    ):
        return await case_service.create_case(
            organisation_id=organisation.id,
            employee_id=employee_id or employee.id,
            reported_by=actor_id,
            absence_type=absence_type,
            absence_start_date=start,
            absence_end_date=end,
            notes=notes,
            today=today,
        )

    return _open
