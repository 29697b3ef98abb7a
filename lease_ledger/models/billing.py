"""Billing record model.

One billable obligation for one parcel in one fiscal year.

Lifecycle:
- Created at lease / billing-cycle generation (outside this service)
- UNPAID -> OVERDUE by the maintenance job once the due date has passed
- UNPAID / OVERDUE -> PAID only through the bank callback processor
- PAID is terminal; records are soft-deleted, never removed
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lease_ledger.database import Base
from lease_ledger.db_types import UUIDType, Money, RateValue

if TYPE_CHECKING:
    from lease_ledger.models.parcel import LeaseAgreement


class PaymentStatus(str, Enum):
    """Bill payment status."""
    UNPAID = "UNPAID"
    OVERDUE = "OVERDUE"
    PAID = "PAID"


OUTSTANDING_STATUSES = (PaymentStatus.UNPAID.value, PaymentStatus.OVERDUE.value)


class BillingRecord(Base):
    """Billing record for one parcel and fiscal year."""
    __tablename__ = "billing_records"
    __table_args__ = (
        Index("ix_billing_records_upin_fiscal_year", "upin", "fiscal_year"),
        Index("ix_billing_records_status_due_date", "payment_status", "due_date"),
    )

    bill_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    upin: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("land_parcels.upin"),
        nullable=False,
        index=True
    )
    lease_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("lease_agreements.lease_id"),
        nullable=True
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Amounts
    base_payment: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    interest_rate_used: Mapped[Optional[Decimal]] = mapped_column(RateValue, nullable=True)
    penalty_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    penalty_rate_used: Mapped[Optional[Decimal]] = mapped_column(RateValue, nullable=True)
    amount_due: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
        comment="base_payment + interest_amount + penalty_amount"
    )
    amount_paid: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
        comment="Outstanding balance, never negative"
    )

    # Status
    payment_status: Mapped[str] = mapped_column(
        String(50),
        default="UNPAID",
        nullable=False,
        index=True,
        comment="UNPAID, OVERDUE, PAID"
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    lease_agreement: Mapped[Optional["LeaseAgreement"]] = relationship(
        "LeaseAgreement",
        back_populates="bills"
    )

    def __repr__(self) -> str:
        return (
            f"<BillingRecord(upin='{self.upin}', fiscal_year={self.fiscal_year}, "
            f"status='{self.payment_status}', remaining={self.remaining_amount})>"
        )
