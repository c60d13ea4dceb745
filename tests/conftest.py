"""Pytest fixtures for USDC payroll tests."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from usdc_payroll.chain import RetryPolicy, StubChainGateway
from usdc_payroll.config import Settings
from usdc_payroll.database import create_session_factory
from usdc_payroll.models import Base, Company, Employee, PayrollBatch, PayrollItem
from usdc_payroll.services import PayrollItemStore

EMPLOYEE_WALLET = "0x1111111111111111111111111111111111111111"

# 1,000 USDC at 6 decimals
DEFAULT_SENDER_BALANCE = 1_000_000_000


def random_tx_hash() -> str:
    return "0x" + secrets.token_hex(32)


def make_settings(**overrides) -> Settings:
    """Settings for tests: stub chain, no retry delays."""
    base = Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        rpc_url=None,
        chain_id=84532,
        usdc_address=None,
        sender_private_key=None,
        chain_backend="stub",
        cron_secret="cron-test-secret",
        rpc_timeout_seconds=1.0,
        transfer_timeout_seconds=1.0,
        rpc_retries=2,
        rpc_backoff_seconds=0.0,
        claim_wait_seconds=2.0,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
    )
    return replace(base, **overrides)


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database per test.

    A file (rather than :memory:) lets every session get its own connection,
    which the concurrency tests rely on.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session: AsyncSession) -> PayrollItemStore:
    return PayrollItemStore(session)


@pytest.fixture
def gateway() -> StubChainGateway:
    return StubChainGateway(sender_balance=DEFAULT_SENDER_BALANCE)


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Read policy with the production retry count but no backoff delay."""
    return RetryPolicy(timeout_seconds=1.0, retries=2, base_delay_seconds=0.0)


class PayrollTestData:
    """Test data generator for payroll tests."""

    def __init__(self):
        self.owner_id = uuid4()
        self.other_user_id = uuid4()
        self.employee_user_id = uuid4()
        self.company: Company | None = None
        self.employee: Employee | None = None
        self.batch: PayrollBatch | None = None

    async def seed(
        self,
        session: AsyncSession,
        *,
        wallet: str | None = EMPLOYEE_WALLET,
    ) -> PayrollTestData:
        """Create a company owned by ``owner_id`` with one employee and batch."""
        self.company = Company(name="Acme Onchain", owner_user_id=self.owner_id)
        session.add(self.company)
        await session.flush()

        self.employee = Employee(
            company_id=self.company.id,
            name="Ada Lovelace",
            email="ada@example.com",
            wallet_address=wallet,
            user_id=self.employee_user_id,
        )
        self.batch = PayrollBatch(company_id=self.company.id, title="October payroll")
        session.add_all([self.employee, self.batch])
        await session.commit()
        return self

    async def add_item(
        self,
        session: AsyncSession,
        *,
        amount: Decimal | str = "100",
        status: str = "created",
        tx_hash: str | None = None,
        claim_token: str | None = None,
        paid_at: datetime | None = None,
        batch: PayrollBatch | None = None,
        employee: Employee | None = None,
    ) -> PayrollItem:
        if status == "paid" and paid_at is None:
            paid_at = datetime.now(timezone.utc)
        if status != "created" and tx_hash is None:
            tx_hash = random_tx_hash()

        item = PayrollItem(
            batch_id=(batch or self.batch).id,
            employee_id=(employee or self.employee).id,
            amount_usdc=Decimal(amount),
            status=status,
            tx_hash=tx_hash,
            claim_token=claim_token,
            paid_at=paid_at,
        )
        session.add(item)
        await session.commit()
        return item

    async def add_company(self, session: AsyncSession, owner_id: UUID) -> tuple[Company, Employee, PayrollBatch]:
        """A second, unrelated company."""
        company = Company(name="Other Co", owner_user_id=owner_id)
        session.add(company)
        await session.flush()
        employee = Employee(company_id=company.id, name="Grace", wallet_address=EMPLOYEE_WALLET)
        batch = PayrollBatch(company_id=company.id, title="Other payroll")
        session.add_all([employee, batch])
        await session.commit()
        return company, employee, batch


@pytest.fixture
async def test_data(session: AsyncSession) -> PayrollTestData:
    """Seeded company, employee and batch."""
    return await PayrollTestData().seed(session)


async def reload_item(session_factory, item_id: UUID) -> PayrollItem:
    """Read an item through a fresh session, as another handler would."""
    async with session_factory() as session:
        item = await PayrollItemStore(session).get(item_id)
        assert item is not None
        return item
