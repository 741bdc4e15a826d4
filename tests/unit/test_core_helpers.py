import logging

import pytest
from pydantic import ValidationError as SettingsError

from slotbook.core.config import Settings
from slotbook.core.logging_config import configure_logging
from slotbook.core.ulid_helper import generate_ulid, is_valid_ulid
from slotbook.monitoring.prometheus_metrics import prometheus_metrics


def test_generated_ids_are_valid_ulids():
    first, second = generate_ulid(), generate_ulid()

    assert first != second
    assert len(first) == 26
    assert is_valid_ulid(first)
    assert not is_valid_ulid("not-a-ulid")


class TestSettings:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SLOTBOOK_CANCELLATION_CUTOFF_HOURS", "48")
        monkeypatch.setenv("SLOTBOOK_DEFAULT_CURRENCY", " usd ")

        configured = Settings()

        assert configured.cancellation_cutoff_hours == 48
        assert configured.default_currency == "USD"

    def test_rejects_bad_currency(self):
        with pytest.raises(SettingsError):
            Settings(default_currency="WON!")

    def test_production_flag(self):
        assert Settings(environment="production").is_production
        assert not Settings(environment="test").is_production


def test_configure_logging_only_touches_package_logger():
    package_logger = logging.getLogger("slotbook")
    handlers = list(package_logger.handlers)
    try:
        configure_logging("debug")

        assert package_logger.level == logging.DEBUG
        assert package_logger.handlers
        assert logging.getLogger("stripe").level == logging.WARNING
    finally:
        package_logger.handlers = handlers
        package_logger.setLevel(logging.NOTSET)


def test_metrics_exposition_includes_service_operations():
    prometheus_metrics.record_service_operation(
        service="BookingService", operation="create_booking", duration=0.01
    )

    body = prometheus_metrics.get_metrics().decode()

    assert "slotbook_service_operations_total" in body
    assert 'operation="create_booking"' in body
    assert prometheus_metrics.get_content_type().startswith("text/plain")
