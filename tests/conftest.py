"""Pytest fixtures for testing"""

import asyncio
import uuid
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from accounts_gateway.api.main import create_app
from accounts_gateway.infrastructure.database.models import Base
from accounts_gateway.infrastructure.database.session import get_db, get_session_factory
from accounts_gateway.infrastructure.ledger.cash_register import DatabaseCashLedger
from accounts_gateway.domain.exceptions import NoOpenRegister
from accounts_gateway.domain.models import AccountKind, CreationType, MovementRequest
from accounts_gateway.services.accounts import AccountService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2024, 3, 10, 14, 30, tzinfo=timezone.utc)


class FakeCashLedger:
    """In-memory cash register that dedupes by idempotency key"""

    def __init__(self, register_open: bool = True):
        self.register_open = register_open
        self.calls: List[MovementRequest] = []
        self.movements: Dict[str, str] = {}
        self.failures: List[Exception] = []
        self.delays: List[float] = []

    async def post_movement(self, movement: MovementRequest) -> str:
        self.calls.append(movement)
        if self.delays:
            # Delay first so a timed out attempt can still land
            delay = self.delays.pop(0)
            movement_id = self.movements.setdefault(movement.idempotency_key, str(uuid.uuid4()))
            await asyncio.sleep(delay)
            return movement_id
        if self.failures:
            raise self.failures.pop(0)
        if not self.register_open:
            raise NoOpenRegister()
        return self.movements.setdefault(movement.idempotency_key, str(uuid.uuid4()))


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    return TestClient(app)


@pytest.fixture
def fake_ledger() -> FakeCashLedger:
    return FakeCashLedger()


@pytest.fixture
def cash_register(db: Session) -> DatabaseCashLedger:
    """Database cash register on the test database, not yet opened"""
    return DatabaseCashLedger(TestingSessionLocal, clock=lambda: FIXED_NOW)


@pytest.fixture
def account_service(db: Session) -> AccountService:
    return AccountService(db)


@pytest.fixture
def single_payable(account_service: AccountService):
    """Single payable of 500.00 due 2024-03-15"""
    return account_service.create_account(
        kind=AccountKind.PAYABLE,
        creation_type=CreationType.SINGLE,
        description="Office rent",
        category="rent",
        total_value=Decimal("500.00"),
        start_date=date(2024, 3, 15),
    )


@pytest.fixture
def receivable_plan(account_service: AccountService):
    """Receivable of 1000.00 in 3 monthly installments from 2024-01-31"""
    return account_service.create_account(
        kind=AccountKind.RECEIVABLE,
        creation_type=CreationType.INSTALLMENT_PLAN,
        description="Consulting contract",
        category="services",
        total_value=Decimal("1000.00"),
        start_date=date(2024, 1, 31),
        count=3,
    )

