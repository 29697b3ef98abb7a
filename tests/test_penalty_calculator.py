"""Tests for penalty arithmetic and the rate resolver."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from lease_ledger.models.rate_config import RateType
from lease_ledger.services.penalty_calculator import NOT_OVERDUE, PenaltyCalculator, compute_penalty
from lease_ledger.services.rate_config_service import RateResolver, RateSource

from factories import NOW


class TestComputePenalty:
    """Pure penalty arithmetic."""

    def test_reference_example(self) -> None:
        result = compute_penalty(
            principal=Decimal("10000"),
            due_date=NOW - timedelta(days=30),
            now=NOW,
            annual_rate=Decimal("0.05"),
            grace_days=10,
        )

        assert result.days_overdue == 30
        assert result.effective_overdue_days == 20
        assert result.penalty == Decimal("27.40")

    def test_not_overdue_returns_zero(self) -> None:
        result = compute_penalty(Decimal("10000"), NOW + timedelta(days=1), NOW, Decimal("0.05"), 0)
        assert result == NOT_OVERDUE
        assert result.penalty == Decimal("0")

    def test_within_grace_period(self) -> None:
        result = compute_penalty(Decimal("10000"), NOW - timedelta(days=5), NOW, Decimal("0.05"), 10)
        assert result.days_overdue == 5
        assert result.effective_overdue_days == 0
        assert result.penalty == Decimal("0.00")

    def test_partial_day_is_floored(self) -> None:
        result = compute_penalty(
            Decimal("3650"), NOW - timedelta(days=2, hours=23), NOW, Decimal("0.10"), 0
        )
        assert result.days_overdue == 2
        assert result.penalty == Decimal("2.00")

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        naive_due = (NOW - timedelta(days=30)).replace(tzinfo=None)
        result = compute_penalty(Decimal("10000"), naive_due, NOW, Decimal("0.05"), 10)
        assert result.penalty == Decimal("27.40")

    def test_rounds_half_up(self) -> None:
        result = compute_penalty(Decimal("1825"), NOW - timedelta(days=1), NOW, Decimal("0.01"), 0)
        assert result.penalty == Decimal("0.05")
        result = compute_penalty(Decimal("365"), NOW - timedelta(days=1), NOW, Decimal("0.015"), 0)
        # 0.015 rounds up to 0.02
        assert result.penalty == Decimal("0.02")


@pytest.mark.asyncio
class TestRateResolver:
    """Effective-rate lookup against the configuration store."""

    async def test_missing_configuration_is_defaulted(self, db) -> None:
        resolved = await RateResolver(db).resolve(RateType.PENALTY_RATE, NOW)

        assert resolved.source == RateSource.DEFAULTED_MISSING
        assert resolved.is_default
        assert resolved.value == Decimal("0")
        assert resolved.config_id is None

    async def test_resolves_active_row(self, db, seed_rate) -> None:
        await seed_rate("PENALTY_RATE", "0.05", NOW - timedelta(days=100))

        resolved = await RateResolver(db).get_penalty_rate(NOW)

        assert resolved.source == RateSource.RESOLVED
        assert resolved.value == Decimal("0.05")
        assert resolved.config_id is not None

    async def test_latest_effective_from_wins(self, db, seed_rate) -> None:
        await seed_rate("PENALTY_RATE", "0.05", NOW - timedelta(days=100))
        await seed_rate("PENALTY_RATE", "0.08", NOW - timedelta(days=10))

        resolved = await RateResolver(db).get_penalty_rate(NOW)
        assert resolved.value == Decimal("0.08")

    async def test_ignores_inactive_future_and_expired_rows(self, db, seed_rate) -> None:
        await seed_rate("PENALTY_RATE", "0.01", NOW - timedelta(days=5), is_active=False)
        await seed_rate("PENALTY_RATE", "0.02", NOW + timedelta(days=5))
        await seed_rate(
            "PENALTY_RATE", "0.03", NOW - timedelta(days=50), effective_until=NOW - timedelta(days=1)
        )
        await seed_rate("PENALTY_RATE", "0.04", NOW - timedelta(days=60))

        resolved = await RateResolver(db).get_penalty_rate(NOW)
        assert resolved.value == Decimal("0.04")

    @pytest.mark.parametrize(
        "as_of, expected",
        [
            (NOW - timedelta(days=61), "0.99"),
            (NOW - timedelta(days=60), "0.01"),
            (NOW - timedelta(days=45), "0.01"),
            (NOW - timedelta(days=30), "0.01"),
            (NOW - timedelta(days=30) + timedelta(seconds=1), "0.99"),
            (NOW - timedelta(days=25), "0.99"),
            (NOW - timedelta(days=20), "0.02"),
            (NOW - timedelta(days=10), "0.02"),
            (NOW - timedelta(days=7), "0.99"),
            (NOW - timedelta(days=5), "0.03"),
            (NOW, "0.03"),
        ],
    )
    async def test_each_instant_resolves_to_its_window(
        self, db, seed_rate, as_of, expected
    ) -> None:
        """Windows are inclusive at both ends; gaps fall back to the default."""
        await seed_rate(
            "PENALTY_RATE", "0.01", NOW - timedelta(days=60), effective_until=NOW - timedelta(days=30)
        )
        await seed_rate(
            "PENALTY_RATE", "0.02", NOW - timedelta(days=20), effective_until=NOW - timedelta(days=10)
        )
        await seed_rate("PENALTY_RATE", "0.03", NOW - timedelta(days=5))

        resolver = RateResolver(db, defaults={"PENALTY_RATE": Decimal("0.99")})
        resolved = await resolver.get_penalty_rate(as_of)

        assert resolved.value == Decimal(expected)
        assert resolved.is_default == (expected == "0.99")

    async def test_rate_types_are_independent(self, db, seed_rate) -> None:
        await seed_rate("LATE_PAYMENT_GRACE_DAYS", 10, NOW - timedelta(days=100))

        resolver = RateResolver(db)
        assert (await resolver.get_grace_days(NOW)).value == Decimal("10")
        assert (await resolver.get_lease_interest_rate(NOW)).is_default

    async def test_custom_defaults(self, db) -> None:
        resolver = RateResolver(db, defaults={"PENALTY_RATE": Decimal("0.02")})
        resolved = await resolver.get_penalty_rate(NOW)
        assert resolved.value == Decimal("0.02")
        assert resolved.is_default


@pytest.mark.asyncio
class TestPenaltyCalculator:
    """Penalty calculation with configured rates."""

    async def test_reference_example_from_configuration(self, db, seed_rate) -> None:
        await seed_rate("PENALTY_RATE", "0.05", NOW - timedelta(days=365))
        await seed_rate("LATE_PAYMENT_GRACE_DAYS", 10, NOW - timedelta(days=365))

        result = await PenaltyCalculator(db).calculate_penalty(
            Decimal("10000"), NOW - timedelta(days=30), NOW
        )

        assert result.penalty == Decimal("27.40")
        assert result.rate_used == Decimal("0.05")
        assert result.grace_days == 10
        assert not result.used_default_configuration

    async def test_missing_configuration_is_visible(self, db) -> None:
        result = await PenaltyCalculator(db).calculate_penalty(
            Decimal("10000"), NOW - timedelta(days=30), NOW
        )

        assert result.penalty == Decimal("0.00")
        assert result.rate_defaulted
        assert result.grace_defaulted
        assert result.used_default_configuration

    async def test_not_overdue_skips_lookup(self, db) -> None:
        result = await PenaltyCalculator(db).calculate_penalty(
            Decimal("10000"), NOW + timedelta(days=3), NOW
        )
        assert result is NOT_OVERDUE
        assert not result.used_default_configuration

    async def test_rates_are_cached_per_instant(self, db, seed_rate) -> None:
        await seed_rate("PENALTY_RATE", "0.05", NOW - timedelta(days=365))
        calculator = PenaltyCalculator(db)

        first = await calculator.load_rates(NOW)
        await seed_rate("PENALTY_RATE", "0.09", NOW - timedelta(days=1))
        second = await calculator.load_rates(NOW)

        assert first is second
        assert second[0].value == Decimal("0.05")
