"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lease_ledger.database import init_db
from lease_ledger.models import (
    BillingRecord,
    LandParcel,
    LeaseAgreement,
    OrderBillItem,
    PaymentOrder,
    RateConfiguration,
)

from factories import NOW, make_bill


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed_parcel(session_factory):
    """Create a parcel, its lease and bills. Returns the created bills."""

    async def _seed(
        upin: str = "P1",
        bills: Iterable[Tuple] = (),
        annual_installment: Decimal = Decimal("1000.00"),
        with_lease: bool = True,
    ) -> List[BillingRecord]:
        created = []
        async with session_factory() as session:
            session.add(LandParcel(upin=upin, file_number=f"F-{upin}"))
            lease = None
            if with_lease:
                lease = LeaseAgreement(
                    lease_id=uuid.uuid4(),
                    upin=upin,
                    annual_installment=annual_installment,
                )
                session.add(lease)
            await session.flush()
            for row in bills:
                fiscal_year, status = row[0], row[1]
                amount = row[2] if len(row) > 2 else Decimal("1000.00")
                bill = make_bill(
                    upin,
                    fiscal_year,
                    amount=amount,
                    status=status,
                    lease_id=lease.lease_id if lease else None,
                )
                session.add(bill)
                created.append(bill)
            await session.commit()
        return created

    return _seed


@pytest.fixture
def seed_rate(session_factory):
    async def _seed(
        rate_type: str,
        value,
        effective_from: datetime,
        effective_until: Optional[datetime] = None,
        is_active: bool = True,
    ) -> RateConfiguration:
        async with session_factory() as session:
            config = RateConfiguration(
                rate_type=rate_type,
                value=Decimal(str(value)),
                effective_from=effective_from,
                effective_until=effective_until,
                is_active=is_active,
            )
            session.add(config)
            await session.commit()
            return config

    return _seed


@pytest.fixture
def seed_order(session_factory):
    async def _seed(
        order_number: str,
        expires_at: datetime,
        bills: Iterable[BillingRecord] = (),
        status: str = "GENERATED",
        total: Decimal = Decimal("0.00"),
    ) -> PaymentOrder:
        async with session_factory() as session:
            order = PaymentOrder(
                order_number=order_number,
                total_amount=total,
                current_calculated_total=total,
                status=status,
                expires_at=expires_at,
            )
            for bill in bills:
                order.bill_items.append(OrderBillItem(
                    bill_id=bill.bill_id,
                    upin=bill.upin,
                    fiscal_year=bill.fiscal_year,
                    amount=bill.amount_due,
                ))
            session.add(order)
            await session.commit()
            return order

    return _seed
