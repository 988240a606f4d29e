"""Tests for SQLite database setup and the user directory."""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError

from lendingdesk.db.schemas import Role, UserCreate
from lendingdesk.db.sqlite import Database, get_db


class TestDatabaseCreation:
    """Tests for database initialization."""

    def test_database_creates_tables(self, db: Database):
        """Test that database creates all required tables."""
        tables = set(inspect(db.engine).get_table_names())
        assert {"books", "users", "book_requests", "issues"} <= tables

    def test_partial_unique_indexes_exist(self, db: Database):
        """Test the pending-request and open-loan indexes are created."""
        request_indexes = {i["name"] for i in inspect(db.engine).get_indexes("book_requests")}
        issue_indexes = {i["name"] for i in inspect(db.engine).get_indexes("issues")}
        assert "uq_book_requests_pending" in request_indexes
        assert "uq_issues_open" in issue_indexes

    def test_file_database_created(self, file_db: Database):
        """Test that the database file is created with foreign keys on."""
        assert file_db.db_path.exists()
        with file_db.get_session() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_transaction_rolls_back_on_error(self, db: Database):
        """Test a failing writer transaction leaves nothing behind."""
        with pytest.raises(RuntimeError):
            with db.transaction() as session:
                db.create_user(UserCreate(name="Temp", email="temp@example.com"), session=session)
                raise RuntimeError("boom")

        assert db.get_user_by_email("temp@example.com") is None

    def test_get_db_uses_environment(self, env_db_path):
        """Test the global database honours LENDINGDESK_DB_PATH."""
        database = get_db()
        assert database.db_path == env_db_path
        assert get_db() is database


class TestUserDirectory:
    """Tests for user operations."""

    def test_create_and_get_user(self, db: Database):
        """Test registering and fetching a user."""
        user = db.create_user(UserCreate(name="Ada", email="Ada@Example.com", role=Role.ADMIN))

        assert user.email == "ada@example.com"
        assert user.is_admin
        assert db.get_user(user.id).name == "Ada"
        assert db.get_user_by_email("ADA@example.com").id == user.id

    def test_default_role_is_patron(self, db: Database):
        """Test users are patrons unless stated otherwise."""
        user = db.create_user(UserCreate(name="Pat", email="pat@example.com"))
        assert user.role == Role.PATRON.value

    def test_duplicate_email_rejected(self, db: Database):
        """Test email addresses are unique."""
        db.create_user(UserCreate(name="Pat", email="pat@example.com"))
        with pytest.raises(IntegrityError):
            db.create_user(UserCreate(name="Other Pat", email="pat@example.com"))

    def test_list_users_sorted(self, db: Database):
        """Test users are listed by name."""
        db.create_user(UserCreate(name="Zed", email="zed@example.com"))
        db.create_user(UserCreate(name="Amy", email="amy@example.com"))
        assert [u.name for u in db.list_users()] == ["Amy", "Zed"]

    def test_invalid_email_rejected(self):
        """Test the schema requires an email address."""
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            UserCreate(name="Nobody", email="not-an-email")
