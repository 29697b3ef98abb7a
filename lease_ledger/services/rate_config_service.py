"""
Rate Configuration Service

Resolves the single effective rate of a given type at a given instant.

SELECTION RULE:
    rate_type matches, is_active, effective_from <= as_of,
    effective_until IS NULL or effective_until >= as_of,
    ordered by effective_from DESC, first row wins.

If configuration rows overlap, the most recent effective_from wins. This
tie-break is the authoritative behaviour.

MISSING CONFIGURATION:
    Billing never halts for missing configuration. The configured default is
    returned with source=DEFAULTED_MISSING and a warning is logged, so callers
    can tell "no penalty because not overdue" from "no penalty because the
    rate is not configured".
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Union

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from lease_ledger.config import settings
from lease_ledger.core.dates import utcnow, to_decimal
from lease_ledger.models.rate_config import RateConfiguration, RateType

logger = logging.getLogger(__name__)


class RateSource(str, Enum):
    RESOLVED = "RESOLVED"
    DEFAULTED_MISSING = "DEFAULTED_MISSING"


@dataclass(frozen=True)
class ResolvedRate:
    """Outcome of a rate lookup."""
    rate_type: str
    value: Decimal
    source: RateSource
    config_id: Optional[int] = None

    @property
    def is_default(self) -> bool:
        return self.source == RateSource.DEFAULTED_MISSING


def default_rates() -> Dict[str, Decimal]:
    """Fallback values per rate type, taken from settings."""
    return {
        RateType.PENALTY_RATE.value: to_decimal(settings.DEFAULT_PENALTY_RATE),
        RateType.LATE_PAYMENT_GRACE_DAYS.value: to_decimal(settings.DEFAULT_GRACE_DAYS),
        RateType.LEASE_INTEREST_RATE.value: to_decimal(settings.DEFAULT_LEASE_INTEREST_RATE),
    }


class RateResolver:
    """Read-only access to the rate configuration store."""

    def __init__(
        self,
        db: AsyncSession,
        defaults: Optional[Dict[str, Decimal]] = None,
    ):
        self.db = db
        self.defaults = defaults if defaults is not None else default_rates()

    async def resolve(
        self,
        rate_type: Union[RateType, str],
        as_of: Optional[datetime] = None,
    ) -> ResolvedRate:
        """Return the effective rate for rate_type at as_of (defaults to now)."""
        type_value = rate_type.value if isinstance(rate_type, RateType) else str(rate_type)
        as_of = as_of or utcnow()

        result = await self.db.execute(
            select(RateConfiguration)
            .where(
                RateConfiguration.rate_type == type_value,
                RateConfiguration.is_active.is_(True),
                RateConfiguration.effective_from <= as_of,
                or_(
                    RateConfiguration.effective_until.is_(None),
                    RateConfiguration.effective_until >= as_of,
                ),
            )
            .order_by(RateConfiguration.effective_from.desc(), RateConfiguration.id.desc())
            .limit(1)
        )
        config = result.scalar_one_or_none()

        if config is None:
            default_value = self.defaults.get(type_value, Decimal("0"))
            logger.warning(
                f"No active rate configuration for {type_value} as of {as_of.isoformat()}; "
                f"using default {default_value}"
            )
            return ResolvedRate(
                rate_type=type_value,
                value=default_value,
                source=RateSource.DEFAULTED_MISSING,
            )

        return ResolvedRate(
            rate_type=type_value,
            value=to_decimal(config.value),
            source=RateSource.RESOLVED,
            config_id=config.id,
        )

    async def get_penalty_rate(self, as_of: Optional[datetime] = None) -> ResolvedRate:
        return await self.resolve(RateType.PENALTY_RATE, as_of)

    async def get_grace_days(self, as_of: Optional[datetime] = None) -> ResolvedRate:
        return await self.resolve(RateType.LATE_PAYMENT_GRACE_DAYS, as_of)

    async def get_lease_interest_rate(self, as_of: Optional[datetime] = None) -> ResolvedRate:
        return await self.resolve(RateType.LEASE_INTEREST_RATE, as_of)
