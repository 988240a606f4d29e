"""Pytest configuration and shared fixtures.

This module provides fixtures for testing lendingdesk, including in-memory
and file-backed databases, a controllable clock, and sample users and books.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from lendingdesk.catalog.store import CatalogStore
from lendingdesk.config import Config, reset_config
from lendingdesk.db.schemas import BookCreate, Role, UserCreate
from lendingdesk.db.sqlite import Database, reset_db
from lendingdesk.lending import Actor, LendingCoordinator


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_config(db_path: str = ":memory:", approval_stock_check: bool = True) -> Config:
    """Build a config without touching the environment."""
    return Config(
        db_path=Path(db_path),
        busy_timeout=10.0,
        loan_days=10,
        approval_stock_check=approval_stock_check,
        log_level="WARNING",
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_globals() -> Generator[None, None, None]:
    """Reset global config and database between tests."""
    reset_db()
    reset_config()
    yield
    reset_db()
    reset_config()


@pytest.fixture
def db() -> Database:
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    database.create_tables()
    return database


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "library.db"


@pytest.fixture
def file_db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a file-backed database, needed when several threads write."""
    database = Database(str(temp_db_path), busy_timeout=10.0)
    database.create_tables()
    yield database
    database.engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    """Clock frozen at a known instant."""
    return FakeClock(datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def config() -> Config:
    """Default lending policy: stock is checked and taken on approval."""
    return make_config()


@pytest.fixture
def legacy_config() -> Config:
    """Policy where approval neither checks nor takes stock."""
    return make_config(approval_stock_check=False)


@pytest.fixture
def coordinator(db: Database, config: Config, clock: FakeClock) -> LendingCoordinator:
    """Create a LendingCoordinator with test database and clock."""
    return LendingCoordinator(db, config, clock=clock)


@pytest.fixture
def catalog(db: Database) -> CatalogStore:
    """Create a CatalogStore with test database."""
    return CatalogStore(db)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def admin(db: Database) -> Actor:
    """Registered administrator."""
    user = db.create_user(UserCreate(name="Ada Admin", email="ada@example.com", role=Role.ADMIN))
    return Actor.admin(user.id)


@pytest.fixture
def patron(db: Database) -> Actor:
    """Registered patron."""
    user = db.create_user(UserCreate(name="Pat Patron", email="pat@example.com"))
    return Actor.patron(user.id)


@pytest.fixture
def other_patron(db: Database) -> Actor:
    """A second registered patron."""
    user = db.create_user(UserCreate(name="Olive Other", email="olive@example.com"))
    return Actor.patron(user.id)


@pytest.fixture
def book_id(catalog: CatalogStore) -> str:
    """A book with a single copy."""
    book = catalog.create_book(BookCreate(title="Dune", author="Frank Herbert", quantity=1))
    return book.id


@pytest.fixture
def out_of_stock_book_id(catalog: CatalogStore) -> str:
    """A book with no copies left."""
    book = catalog.create_book(BookCreate(title="1984", author="George Orwell", quantity=0))
    return book.id


@pytest.fixture
def env_db_path(temp_db_path: Path) -> Generator[Path, None, None]:
    """Point LENDINGDESK_DB_PATH at a temporary file."""
    os.environ["LENDINGDESK_DB_PATH"] = str(temp_db_path)
    reset_config()
    yield temp_db_path
    del os.environ["LENDINGDESK_DB_PATH"]
