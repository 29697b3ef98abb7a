"""Land parcel and lease agreement models."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lease_ledger.database import Base
from lease_ledger.db_types import UUIDType, Money

if TYPE_CHECKING:
    from lease_ledger.models.billing import BillingRecord


class LandParcel(Base):
    """A land parcel identified by its UPIN."""
    __tablename__ = "land_parcels"

    upin: Mapped[str] = mapped_column(
        String(50),
        primary_key=True,
        comment="Unique parcel identification number"
    )
    file_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    lease_agreement: Mapped[Optional["LeaseAgreement"]] = relationship(
        "LeaseAgreement",
        back_populates="parcel",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<LandParcel(upin='{self.upin}')>"


class LeaseAgreement(Base):
    """Lease agreement; one per parcel."""
    __tablename__ = "lease_agreements"

    lease_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    upin: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("land_parcels.upin"),
        unique=True,
        nullable=False,
        index=True
    )
    annual_installment: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
        comment="Per-year base payment; unit of the future-bill spillover"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    parcel: Mapped["LandParcel"] = relationship("LandParcel", back_populates="lease_agreement")
    bills: Mapped[List["BillingRecord"]] = relationship("BillingRecord", back_populates="lease_agreement")

    def __repr__(self) -> str:
        return f"<LeaseAgreement(upin='{self.upin}', annual_installment={self.annual_installment})>"
