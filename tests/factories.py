"""Test data builders."""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from lease_ledger.jobs.maintenance_lock import LockType
from lease_ledger.models import BillingRecord

# Fixed clock: fiscal year 2024 is "current"
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_bill(
    upin: str,
    fiscal_year: int,
    amount: Decimal = Decimal("1000.00"),
    status: str = "UNPAID",
    due_date: Optional[datetime] = None,
    remaining: Optional[Decimal] = None,
    lease_id: Optional[uuid.UUID] = None,
    interest: Decimal = Decimal("0.00"),
    penalty: Decimal = Decimal("0.00"),
    updated_at: Optional[datetime] = None,
) -> BillingRecord:
    """Build a bill whose amount_due is amount + interest + penalty."""
    amount_due = amount + interest + penalty
    bill = BillingRecord(
        bill_id=uuid.uuid4(),
        upin=upin,
        lease_id=lease_id,
        fiscal_year=fiscal_year,
        base_payment=amount,
        interest_amount=interest,
        penalty_amount=penalty,
        amount_due=amount_due,
        amount_paid=Decimal("0.00"),
        remaining_amount=amount_due if remaining is None else remaining,
        payment_status=status,
        due_date=due_date or datetime(fiscal_year, 1, 31, tzinfo=timezone.utc),
        is_deleted=False,
    )
    if updated_at is not None:
        bill.updated_at = updated_at
    return bill


class FakeLock:
    """Stand-in for MaintenanceLock with a fixed outcome."""

    def __init__(self, lock_type=None, delay: float = 0.0):
        self.lock_type = lock_type or LockType.FILE
        self.delay = delay
        self.acquired = 0
        self.released = 0

    async def acquire(self):
        self.acquired += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.lock_type

    async def release(self) -> None:
        self.released += 1
