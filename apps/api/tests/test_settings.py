"""Tests for settings validation."""

import pytest

from incident_api.settings import Settings


def test_database_url_falls_back_to_postgres_parts():
    settings = Settings(database_url=None, postgres_host="db", postgres_db="ledger")
    assert settings.database_url_computed.startswith("postgresql://")
    assert "@db:5432/ledger" in settings.database_url_computed


def test_explicit_database_url_wins():
    settings = Settings(database_url="sqlite:///ledger.db")
    assert settings.database_url_computed == "sqlite:///ledger.db"


def test_sqlite_allowed_in_development():
    Settings(environment="development", database_url="sqlite:///ledger.db").validate_production_settings()


def test_sqlite_rejected_in_production():
    settings = Settings(environment="production", database_url="sqlite:///ledger.db")
    with pytest.raises(ValueError, match="SQLite"):
        settings.validate_production_settings()


def test_debug_logging_rejected_in_production():
    settings = Settings(
        environment="production",
        database_url="postgresql://u:p@db/ledger",
        log_level="DEBUG",
    )
    with pytest.raises(ValueError, match="DEBUG"):
        settings.validate_production_settings()


@pytest.mark.parametrize(
    "overrides",
    [
        {"ledger_max_retries": -1},
        {"ledger_backoff_base_ms": 100, "ledger_backoff_max_ms": 50},
        {"ledger_backoff_base_ms": -5},
    ],
)
def test_invalid_retry_settings_rejected(overrides):
    settings = Settings(environment="test", **overrides)
    with pytest.raises(ValueError):
        settings.validate_production_settings()


def test_ledger_defaults():
    settings = Settings()
    assert settings.ledger_max_retries == 5
    assert settings.export_digest_prefix_chars == 16
