"""Tests for settings and logging setup."""

import json
import logging

from lease_ledger.config import Settings
from lease_ledger.core.logging import JsonFormatter, setup_logging


def make_settings(**overrides) -> Settings:
    return Settings(DATABASE_URL="sqlite+aiosqlite://", **overrides)


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        config = make_settings()

        assert config.MAINTENANCE_CRON == "0 0 * * *"
        assert config.SCHEDULER_TIMEZONE == "Africa/Addis_Ababa"
        assert config.PENALTY_BATCH_SIZE == 100
        assert config.ORDER_BATCH_SIZE == 50
        assert config.MAINTENANCE_LOCK_NAME == "daily_billing_maintenance_lock"
        assert config.MAX_BILLS_PER_PAYMENT == 10
        assert config.MAINTENANCE_RETRY_DELAY_MINUTES == 5

    def test_environment_is_normalized(self) -> None:
        config = make_settings(ENVIRONMENT=" Production ")
        assert config.ENVIRONMENT == "production"
        assert config.is_production

    def test_unlocked_maintenance_follows_environment(self) -> None:
        assert make_settings(ENVIRONMENT="development").allow_unlocked_maintenance
        assert not make_settings(ENVIRONMENT="production").allow_unlocked_maintenance

    def test_unlocked_maintenance_explicit_flag_wins(self) -> None:
        config = make_settings(ENVIRONMENT="production", MAINTENANCE_ALLOW_WITHOUT_LOCK=True)
        assert config.allow_unlocked_maintenance

        config = make_settings(ENVIRONMENT="development", MAINTENANCE_ALLOW_WITHOUT_LOCK=False)
        assert not config.allow_unlocked_maintenance

    def test_cors_origins_comma_separated(self) -> None:
        config = make_settings(CORS_ORIGINS="http://a.example, http://b.example")
        assert config.CORS_ORIGINS == ["http://a.example", "http://b.example"]

    def test_cors_origins_json(self) -> None:
        config = make_settings(CORS_ORIGINS='["http://a.example"]')
        assert config.CORS_ORIGINS == ["http://a.example"]


class TestLogging:
    """Tests for setup_logging and JsonFormatter."""

    def test_setup_logging_sets_level(self) -> None:
        setup_logging(level="DEBUG")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("lease_ledger").level == logging.DEBUG
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_setup_logging_json_handler(self) -> None:
        setup_logging(level="INFO", format_type="json")
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, JsonFormatter)

    def test_invalid_level_defaults_to_info(self) -> None:
        setup_logging(level="NOPE")
        assert logging.getLogger().level == logging.INFO

    def test_json_formatter_output(self) -> None:
        record = logging.LogRecord(
            name="lease_ledger.test",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="penalty for %s",
            args=("P1",),
            exc_info=None,
        )
        data = json.loads(JsonFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["logger"] == "lease_ledger.test"
        assert data["message"] == "penalty for P1"
        assert "timestamp" in data

    def test_json_formatter_merges_fields(self) -> None:
        logger = logging.getLogger("lease_ledger.test.fields")
        record = logger.makeRecord(
            logger.name,
            logging.INFO,
            __file__,
            1,
            "payment applied",
            (),
            None,
            extra={"fields": {"upin": "P1", "future_years_paid": [2026, 2027], "level": "spoofed"}},
        )
        data = json.loads(JsonFormatter().format(record))

        assert data["upin"] == "P1"
        assert data["future_years_paid"] == [2026, 2027]
        # Fields never overwrite the base keys
        assert data["level"] == "INFO"

    def test_json_formatter_includes_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            exc_info = sys.exc_info()

        record = logging.LogRecord(
            name="lease_ledger.test",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="failed",
            args=(),
            exc_info=exc_info,
        )
        data = json.loads(JsonFormatter().format(record))
        assert "ValueError: boom" in data["exception"]
