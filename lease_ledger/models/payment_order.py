"""Payment order models.

A payment order bundles selected bills with a calculated total. While the
order is GENERATED and unexpired, current_calculated_total follows the live
amount_due of its bills (kept in sync by the maintenance job).
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lease_ledger.database import Base
from lease_ledger.db_types import UUIDType, Money

if TYPE_CHECKING:
    from lease_ledger.models.billing import BillingRecord


class OrderStatus(str, Enum):
    """Payment order status."""
    GENERATED = "GENERATED"
    PAID = "PAID"
    EXPIRED = "EXPIRED"


class PaymentOrder(Base):
    """Generated payment order."""
    __tablename__ = "payment_orders"

    order_number: Mapped[str] = mapped_column(String(50), primary_key=True)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    current_calculated_total: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default="GENERATED",
        nullable=False,
        index=True,
        comment="GENERATED, PAID, EXPIRED"
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_recalculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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

    bill_items: Mapped[List["OrderBillItem"]] = relationship(
        "OrderBillItem",
        back_populates="order",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<PaymentOrder(number='{self.order_number}', status='{self.status}')>"


class OrderBillItem(Base):
    """One bill inside a payment order."""
    __tablename__ = "order_bill_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("payment_orders.order_number", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    bill_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("billing_records.bill_id"),
        nullable=False,
        index=True
    )
    upin: Mapped[str] = mapped_column(String(50), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    order: Mapped["PaymentOrder"] = relationship("PaymentOrder", back_populates="bill_items")
    bill: Mapped["BillingRecord"] = relationship("BillingRecord")
