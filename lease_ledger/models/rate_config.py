"""Versioned, time-bounded rate configuration."""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Index
from sqlalchemy.orm import Mapped, mapped_column

from lease_ledger.database import Base
from lease_ledger.db_types import RateValue


class RateType(str, Enum):
    """Configurable rate types."""
    PENALTY_RATE = "PENALTY_RATE"                        # Annual rate, e.g. 0.05
    LATE_PAYMENT_GRACE_DAYS = "LATE_PAYMENT_GRACE_DAYS"  # Whole days
    LEASE_INTEREST_RATE = "LEASE_INTEREST_RATE"


class RateConfiguration(Base):
    """
    Rate configuration row.

    Several rows may exist per rate type; the administrative interface that
    writes them keeps at most one effective for any instant.
    """
    __tablename__ = "rate_configurations"
    __table_args__ = (
        Index("ix_rate_configurations_type_from", "rate_type", "effective_from"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rate_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="PENALTY_RATE, LATE_PAYMENT_GRACE_DAYS, LEASE_INTEREST_RATE"
    )
    value: Mapped[Decimal] = mapped_column(RateValue, nullable=False)
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="NULL = open-ended"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<RateConfiguration(type='{self.rate_type}', value={self.value}, from={self.effective_from})>"
