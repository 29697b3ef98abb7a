"""
Penalty Calculator

Late-payment penalty as simple interest on the principal (base payment +
interest) for every day past the due date beyond the grace period:

    days_overdue           = floor((now - due_date) / 1 day)
    effective_overdue_days = max(0, days_overdue - grace_days)
    penalty                = principal * annual_rate * effective_overdue_days / 365

rounded half-up to the cent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from lease_ledger.core.dates import ZERO, ensure_utc, round_currency, to_decimal, utcnow
from lease_ledger.services.rate_config_service import RateResolver, ResolvedRate

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = Decimal("365")


@dataclass(frozen=True)
class PenaltyResult:
    penalty: Decimal
    rate_used: Decimal
    days_overdue: int = 0
    effective_overdue_days: int = 0
    grace_days: int = 0
    rate_defaulted: bool = False
    grace_defaulted: bool = False

    @property
    def used_default_configuration(self) -> bool:
        return self.rate_defaulted or self.grace_defaulted


NOT_OVERDUE = PenaltyResult(penalty=ZERO, rate_used=ZERO)


def compute_penalty(
    principal: Decimal,
    due_date: datetime,
    now: datetime,
    annual_rate: Decimal,
    grace_days: int,
) -> PenaltyResult:
    """Pure penalty arithmetic; no lookups."""
    due_date = ensure_utc(due_date)
    now = ensure_utc(now)

    if now <= due_date:
        return NOT_OVERDUE

    days_overdue = (now - due_date).days  # timedelta.days floors
    effective_days = max(0, days_overdue - grace_days)
    penalty = to_decimal(principal) * to_decimal(annual_rate) * effective_days / DAYS_PER_YEAR

    return PenaltyResult(
        penalty=round_currency(penalty),
        rate_used=to_decimal(annual_rate),
        days_overdue=days_overdue,
        effective_overdue_days=effective_days,
        grace_days=grace_days,
    )


class PenaltyCalculator:
    """Penalty calculation backed by the rate configuration store."""

    def __init__(self, db: AsyncSession, resolver: Optional[RateResolver] = None):
        self.db = db
        self.resolver = resolver or RateResolver(db)
        self._rates: Dict[datetime, Tuple[ResolvedRate, ResolvedRate]] = {}

    async def load_rates(self, now: datetime) -> Tuple[ResolvedRate, ResolvedRate]:
        """(penalty rate, grace days) effective at now; cached per instant."""
        if now not in self._rates:
            rate = await self.resolver.get_penalty_rate(now)
            grace = await self.resolver.get_grace_days(now)
            self._rates[now] = (rate, grace)
        return self._rates[now]

    async def calculate_penalty(
        self,
        principal: Decimal,
        due_date: datetime,
        now: Optional[datetime] = None,
    ) -> PenaltyResult:
        now = ensure_utc(now) if now else utcnow()

        if now <= ensure_utc(due_date):
            return NOT_OVERDUE

        rate, grace = await self.load_rates(now)

        result = compute_penalty(
            principal=principal,
            due_date=due_date,
            now=now,
            annual_rate=rate.value,
            grace_days=int(grace.value),
        )
        return PenaltyResult(
            penalty=result.penalty,
            rate_used=result.rate_used,
            days_overdue=result.days_overdue,
            effective_overdue_days=result.effective_overdue_days,
            grace_days=result.grace_days,
            rate_defaulted=rate.is_default,
            grace_defaulted=grace.is_default,
        )
