"""Configuration management for lendingdesk.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_LOAN_DAYS = 10


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path
    busy_timeout: float  # seconds a writer waits for the database lock

    # Lending policy
    loan_days: int
    approval_stock_check: bool

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "LENDINGDESK_DB_PATH",
            str(Path.home() / ".lendingdesk" / "library.db"),
        )
        db_path = Path(db_path_str).expanduser() if db_path_str != ":memory:" else Path(db_path_str)

        return cls(
            db_path=db_path,
            busy_timeout=float(os.environ.get("LENDINGDESK_BUSY_TIMEOUT", "5.0")),
            loan_days=int(os.environ.get("LENDINGDESK_LOAN_DAYS", str(DEFAULT_LOAN_DAYS))),
            approval_stock_check=_env_flag("LENDINGDESK_APPROVAL_STOCK_CHECK", True),
            log_level=os.environ.get("LENDINGDESK_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def loan_period(self) -> timedelta:
        """Fixed loan duration applied to every new issue."""
        return timedelta(days=self.loan_days)

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.loan_days <= 0:
            errors.append(f"Loan period must be positive, got {self.loan_days} days")

        if self.busy_timeout < 0:
            errors.append(f"Busy timeout cannot be negative, got {self.busy_timeout}")

        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
