"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import os
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import AsyncMock

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from claim_engine.api import deps
from claim_engine.api.main import app
from claim_engine.core.config import ClaimsSettings
from claim_engine.core.enums import ContractBasis
from claim_engine.db.connection import get_session
from claim_engine.models import Base, FeeScheduleItem, Patient, PayerContract
from claim_engine.schemas.claim import ClaimCreate, LineItemIn
from claim_engine.services.collaborators import SequentialIdGenerator

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = "tenant-a"
OTHER_TENANT_ID = "tenant-b"
USER_ID = "user-1"


def recent_service_date(days_ago: int = 10) -> date:
    """Service date inside the filing window, never in the future."""
    return date.today() - timedelta(days=days_ago)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
async def db_engine():
    """In-memory SQLite engine with working SAVEPOINTs."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves
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
async def db_session(db_engine):
    """Session configured like the application's session maker."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_maker() as session:
        yield session


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def id_generator():
    """Deterministic ids: id-000001, CLM-TEST-000001, ..."""
    return SequentialIdGenerator()


@pytest.fixture
def audit_sink():
    """Audit sink recording calls."""
    sink = AsyncMock()
    sink.record = AsyncMock()
    return sink


@pytest.fixture
def event_emitter():
    """Event emitter recording calls."""
    emitter = AsyncMock()
    emitter.emit = AsyncMock()
    return emitter


@pytest.fixture
def claims_settings():
    """Engine settings with defaults, independent of the environment."""
    return ClaimsSettings(_env_file=None)


# =============================================================================
# API Client
# =============================================================================


@pytest.fixture
async def client(db_session, id_generator, audit_sink, event_emitter, claims_settings):
    """
    HTTP client for the app, bound to the test session and collaborators.

    Sends tenant-a / user-1 headers by default.
    """

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[deps.get_id_generator] = lambda: id_generator
    app.dependency_overrides[deps.get_audit_sink] = lambda: audit_sink
    app.dependency_overrides[deps.get_event_emitter] = lambda: event_emitter
    app.dependency_overrides[deps.get_engine_settings] = lambda: claims_settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Tenant-ID": TENANT_ID, "X-User-ID": USER_ID},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Seed Data
# =============================================================================


async def add_patient(
    session: AsyncSession,
    patient_id: str,
    first_name: str,
    last_name: str,
    tenant_id: str = TENANT_ID,
) -> Patient:
    patient = Patient(
        id=patient_id,
        tenant_id=tenant_id,
        first_name=first_name,
        last_name=last_name,
        date_of_birth=date(1980, 5, 17),
    )
    session.add(patient)
    await session.commit()
    return patient


async def add_fee(
    session: AsyncSession,
    cpt_code: str,
    fee_cents: int,
    medicare_cents: Optional[int] = None,
    tenant_id: str = TENANT_ID,
) -> FeeScheduleItem:
    item = FeeScheduleItem(
        id=f"fee-{tenant_id}-{cpt_code}",
        tenant_id=tenant_id,
        cpt_code=cpt_code,
        fee_cents=fee_cents,
        medicare_cents=medicare_cents,
        description=f"Fee for {cpt_code}",
    )
    session.add(item)
    await session.commit()
    return item


async def add_contract(
    session: AsyncSession,
    payer_id: Optional[str],
    payer_name: str,
    reimbursement_percent: str = "100.00",
    basis: ContractBasis = ContractBasis.FEE_SCHEDULE,
    appeal_filing_days: Optional[int] = None,
    timely_filing_days: Optional[int] = None,
    tenant_id: str = TENANT_ID,
) -> PayerContract:
    contract = PayerContract(
        id=f"contract-{tenant_id}-{payer_name.lower().replace(' ', '-')}",
        tenant_id=tenant_id,
        payer_id=payer_id,
        payer_name=payer_name,
        reimbursement_percent=Decimal(reimbursement_percent),
        basis=basis,
        appeal_filing_days=appeal_filing_days,
        timely_filing_days=timely_filing_days,
        active=True,
    )
    session.add(contract)
    await session.commit()
    return contract


def line(
    cpt: str,
    charge: str,
    units: int = 1,
    dx: tuple[str, ...] = ("L82.1",),
    modifiers: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Line item payload in wire format."""
    return {"cpt": cpt, "charge": charge, "units": units, "dx": list(dx), "modifiers": list(modifiers)}


def claim_create(**overrides: Any) -> ClaimCreate:
    """
    A clean two-line biopsy claim: 11100 x1 @ 150 and 11101 x2 @ 75,
    totalling 300.00.
    """
    data: dict[str, Any] = {
        "patientId": "patient-1",
        "payerId": "aetna",
        "payerName": "Aetna",
        "serviceDate": recent_service_date(),
        "diagnoses": ["L82.1"],
        "lineItems": [line("11100", "150.00"), line("11101", "75.00", units=2)],
    }
    data.update(overrides)
    return ClaimCreate.model_validate(data)


def line_item_in(cpt: str, charge: str, **kwargs: Any) -> LineItemIn:
    return LineItemIn.model_validate(line(cpt, charge, **kwargs))


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
