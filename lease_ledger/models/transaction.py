"""Financial transaction model (one row per bank payment, append-only)."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column

from lease_ledger.database import Base
from lease_ledger.db_types import UUIDType, Money


LEASE_BILLING_PAYMENT_TYPE = "LEASE BILLING"


class FinancialTransaction(Base):
    """
    Immutable record of a bank payment.

    bank_transaction_id is the idempotency key: a second callback with the
    same id is rejected before any bill is touched.
    """
    __tablename__ = "financial_transactions"

    transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    bank_transaction_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True
    )
    upin: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("land_parcels.upin"),
        nullable=False,
        index=True
    )
    amount_paid: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(50), default=LEASE_BILLING_PAYMENT_TYPE, nullable=False)
    bank_branch: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    bank_account: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<FinancialTransaction(bank_id='{self.bank_transaction_id}', upin='{self.upin}')>"
