"""Tests for configuration loading."""

from datetime import timedelta
from pathlib import Path

from lendingdesk.config import Config, get_config, reset_config


def test_defaults(monkeypatch):
    """Test defaults when no environment variables are set."""
    for name in (
        "LENDINGDESK_DB_PATH",
        "LENDINGDESK_LOAN_DAYS",
        "LENDINGDESK_APPROVAL_STOCK_CHECK",
        "LENDINGDESK_BUSY_TIMEOUT",
        "LENDINGDESK_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)

    config = Config.from_env()

    assert config.db_path == Path.home() / ".lendingdesk" / "library.db"
    assert config.loan_days == 10
    assert config.loan_period == timedelta(days=10)
    assert config.approval_stock_check is True
    assert config.busy_timeout == 5.0
    assert config.log_level == "WARNING"


def test_from_env(monkeypatch, tmp_path):
    """Test every setting can be overridden."""
    monkeypatch.setenv("LENDINGDESK_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("LENDINGDESK_LOAN_DAYS", "14")
    monkeypatch.setenv("LENDINGDESK_APPROVAL_STOCK_CHECK", "false")
    monkeypatch.setenv("LENDINGDESK_BUSY_TIMEOUT", "1.5")
    monkeypatch.setenv("LENDINGDESK_LOG_LEVEL", "info")

    config = Config.from_env()

    assert config.db_path == tmp_path / "x.db"
    assert config.loan_period == timedelta(days=14)
    assert config.approval_stock_check is False
    assert config.busy_timeout == 1.5
    assert config.log_level == "INFO"


def test_validate_reports_bad_values(tmp_path):
    """Test validation flags a non-positive loan period and negative timeout."""
    config = Config(
        db_path=tmp_path / "library.db",
        busy_timeout=-1,
        loan_days=0,
        approval_stock_check=True,
        log_level="WARNING",
    )

    errors = config.validate()

    assert len(errors) == 2
    assert any("Loan period" in e for e in errors)


def test_global_config_is_cached(monkeypatch):
    """Test get_config returns one instance until reset."""
    monkeypatch.setenv("LENDINGDESK_LOAN_DAYS", "7")
    reset_config()
    first = get_config()
    assert get_config() is first
    assert first.loan_days == 7

    reset_config()
    assert get_config() is not first
