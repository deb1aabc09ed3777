'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. Providing a fresh in-memory SQLite database and session for each test.
3. Providing an httpx AsyncClient bound to the app for endpoint testing.
4. Providing instances of all service classes, pre-injected with the test db session.
'''

import os

# Force test mode before the settings object is created on import.
os.environ["TEST_MODE"] = "True"

import pytest
import httpx
from datetime import time
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.pool import StaticPool

# --- Application Imports ---
from src.booking_backend.main import app
from src.booking_backend.common.config import settings
from src.booking_backend.database.engine import get_db_session, enable_sqlite_savepoints
from src.booking_backend.database.db_enums import PaymentStatus, UserRole
from src.booking_backend.database import models as db_models
from src.booking_backend.models.client import PortalIdentity
from src.booking_backend.models.finance import PaymentConfirmation
from src.booking_backend.services.client_service import ClientService
from src.booking_backend.services.conflict_checker import ConflictChecker
from src.booking_backend.services.finance_service import LedgerService, PaymentLinkService, PaymentReconciler
from src.booking_backend.services.booking_service import AppointmentService
from src.booking_backend.services.client_portal_service import ClientPortalService
from src.booking_backend.services.schedule_service import ScheduleService
from src.booking_backend.services.payment_gateway import SquarePaymentGateway

from tests.database import factories
from tests.constants import (
    TEST_PORTAL_USERNAME,
    TEST_ADMIN_USERNAME,
    TEST_CLIENT_EMAIL,
    TEST_CLIENT_NAME,
    TEST_SQUARE_GROSS,
    TEST_PAYMENT_LINK
)


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (aiosqlite is asyncio-only).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A brand-new in-memory database with every table created."""
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    engine = create_async_engine(
        settings.DATABASE_URL_TEST,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)

    async with engine.begin() as conn:
        await conn.run_sync(db_models.Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Provides a single session for service-level tests, configured like the
    app's own session factory. Factories add their rows to it.
    """
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_factory()
    factories.test_db_session = session
    try:
        yield session
    finally:
        factories.test_db_session = None
        await session.rollback()
        await session.close()


# --- 2. Payment Gateway Mock ---

@pytest.fixture(scope="function")
def mock_payment_gateway() -> SquarePaymentGateway:
    """Provides a mock gateway that reports every payment as COMPLETED and hands out one fixed link."""
    mock_gateway = MagicMock(spec=SquarePaymentGateway)
    mock_gateway.get_payment = AsyncMock(
        side_effect=lambda transaction_id: PaymentConfirmation(
            transaction_id=transaction_id,
            status=PaymentStatus.COMPLETED,
            amount=TEST_SQUARE_GROSS,
            processor="Square"
        )
    )
    mock_gateway.create_payment_link = AsyncMock(return_value=TEST_PAYMENT_LINK)
    return mock_gateway


# --- 3. API Client ---

@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    mock_payment_gateway: SquarePaymentGateway
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    An httpx client talking to the app in-process.

    Every request shares the test's `db_session`, so rows seeded through the
    factories are visible to the endpoints and vice versa.
    """
    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[SquarePaymentGateway] = lambda: mock_payment_gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


# --- 4. SERVICE FIXTURES ---
# These just depend on the clean `db_session` fixture.

@pytest.fixture(scope="function")
def client_service(db_session: AsyncSession) -> ClientService:
    return ClientService(db=db_session)

@pytest.fixture(scope="function")
def conflict_checker(db_session: AsyncSession) -> ConflictChecker:
    return ConflictChecker(db=db_session)

@pytest.fixture(scope="function")
def ledger_service(db_session: AsyncSession) -> LedgerService:
    return LedgerService(db=db_session)

@pytest.fixture(scope="function")
def appointment_service(
    db_session: AsyncSession,
    client_service: ClientService,
    conflict_checker: ConflictChecker,
    ledger_service: LedgerService
) -> AppointmentService:
    return AppointmentService(
        db=db_session,
        client_service=client_service,
        conflict_checker=conflict_checker,
        ledger_service=ledger_service
    )

@pytest.fixture(scope="function")
def portal_service(
    db_session: AsyncSession,
    client_service: ClientService,
    conflict_checker: ConflictChecker
) -> ClientPortalService:
    return ClientPortalService(
        db=db_session,
        client_service=client_service,
        conflict_checker=conflict_checker
    )

@pytest.fixture(scope="function")
def payment_reconciler(
    db_session: AsyncSession,
    client_service: ClientService,
    conflict_checker: ConflictChecker,
    ledger_service: LedgerService,
    mock_payment_gateway: SquarePaymentGateway
) -> PaymentReconciler:
    return PaymentReconciler(
        db=db_session,
        client_service=client_service,
        conflict_checker=conflict_checker,
        ledger_service=ledger_service,
        gateway=mock_payment_gateway
    )

@pytest.fixture(scope="function")
def schedule_service(db_session: AsyncSession) -> ScheduleService:
    return ScheduleService(db=db_session)

@pytest.fixture(scope="function")
def payment_link_service(mock_payment_gateway: SquarePaymentGateway) -> PaymentLinkService:
    return PaymentLinkService(gateway=mock_payment_gateway)


# --- 5. DATA FIXTURES ---

@pytest.fixture(scope="function")
async def test_portal_user_orm(db_session: AsyncSession) -> db_models.Users:
    """A client-role user of the portal."""
    user = factories.UserFactory(
        username=TEST_PORTAL_USERNAME,
        name=TEST_CLIENT_NAME,
        email=TEST_CLIENT_EMAIL,
        role=UserRole.CLIENT.value
    )
    await db_session.flush()
    return user

@pytest.fixture(scope="function")
async def test_portal_client_orm(db_session: AsyncSession, test_portal_user_orm: db_models.Users) -> db_models.Clients:
    """The billing client linked to the portal user."""
    client = factories.ClientFactory(full_name=TEST_CLIENT_NAME, email=TEST_CLIENT_EMAIL, user=test_portal_user_orm)
    await db_session.flush()
    return client

@pytest.fixture(scope="function")
async def test_admin_user_orm(db_session: AsyncSession) -> db_models.Users:
    user = factories.UserFactory(username=TEST_ADMIN_USERNAME, role=UserRole.ADMIN.value)
    await db_session.flush()
    return user

@pytest.fixture(scope="function")
def portal_identity(test_portal_user_orm: db_models.Users) -> PortalIdentity:
    return PortalIdentity(
        user_id=test_portal_user_orm.id,
        username=test_portal_user_orm.username,
        email=test_portal_user_orm.email,
        name=test_portal_user_orm.name,
        role=UserRole.CLIENT
    )

@pytest.fixture(scope="function")
def portal_headers(test_portal_user_orm: db_models.Users) -> dict[str, str]:
    return {"x-user-id": str(test_portal_user_orm.id), "x-username": test_portal_user_orm.username}

@pytest.fixture(scope="function")
async def test_owned_appointment_orm(
    db_session: AsyncSession,
    test_portal_client_orm: db_models.Clients
) -> db_models.Appointments:
    """An appointment billed to the portal user's client."""
    appointment = factories.AppointmentFactory(client=test_portal_client_orm, price=Decimal("45.00"))
    await db_session.flush()
    return appointment

@pytest.fixture(scope="function")
async def test_foreign_appointment_orm(db_session: AsyncSession) -> db_models.Appointments:
    """An appointment belonging to somebody else."""
    appointment = factories.AppointmentFactory()
    await db_session.flush()
    return appointment

@pytest.fixture(scope="function")
async def test_weekly_availability_orm(db_session: AsyncSession) -> list[db_models.WeeklyAvailability]:
    """Algebra Tutoring offered at 09:00 and 10:00 on every weekday."""
    rows = [
        factories.WeeklyAvailabilityFactory(
            weekday=weekday,
            start_time=time(hour, 0),
            end_time=time(hour + 1, 0),
            appointment_type="Algebra Tutoring"
        )
        for weekday in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")
        for hour in (9, 10)
    ]
    await db_session.flush()
    return rows
