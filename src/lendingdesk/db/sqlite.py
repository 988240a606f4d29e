"""SQLite database operations.

Handles database connection, session management, writer transactions and
the local user directory.
"""

import threading
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import get_config
from .models import Base, User
from .schemas import UserCreate


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None, busy_timeout: Optional[float] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:". If None,
                     uses LENDINGDESK_DB_PATH or the default location.
            busy_timeout: Seconds a writer waits for the database lock.
        """
        config = get_config()
        if db_path is None:
            db_path = str(config.db_path)
        if busy_timeout is None:
            busy_timeout = config.busy_timeout

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"
        # One shared connection backs an in-memory database, so sessions take turns
        self._memory_lock = threading.RLock() if self._is_memory else None

        if not self._is_memory:
            self._ensure_directory()

        connect_args = {"check_same_thread": False, "timeout": busy_timeout}

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args=connect_args,
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args=connect_args,
            )
        self._install_transaction_hooks()

        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        # Writer sessions take the database write lock when they begin
        self.WriterSession = sessionmaker(
            bind=self.engine.execution_options(immediate_transaction=True),
            autocommit=False,
            autoflush=False,
        )

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _install_transaction_hooks(self) -> None:
        """Let SQLAlchemy emit BEGIN itself instead of the sqlite3 driver.

        The driver's implicit transactions start lazily and cannot take the
        write lock up front, which writer transactions rely on.
        """

        @event.listens_for(self.engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            if not self._is_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(self.engine, "begin")
        def _on_begin(conn):
            if conn.get_execution_options().get("immediate_transaction"):
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                conn.exec_driver_sql("BEGIN")

    def _exclusive(self):
        """Hold the in-memory lock for the life of a session (no-op for files)."""
        return self._memory_lock if self._memory_lock is not None else nullcontext()

    def create_tables(self) -> None:
        """Create all database tables."""
        # Import ledger models to register them with Base
        from ..requesting.models import BookRequest  # noqa: F401
        from ..loans.models import Issue  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        with self._exclusive():
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Get a session whose transaction holds the write lock from the start.

        Everything done inside commits together or not at all.
        """
        with self._exclusive():
            session = self.WriterSession()
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    # ========================================================================
    # User Directory
    # ========================================================================

    def create_user(self, user: UserCreate, session: Optional[Session] = None) -> User:
        """Register a user."""

        def _create(s: Session) -> User:
            db_user = User(name=user.name, email=user.email, role=user.role.value)
            s.add(db_user)
            s.flush()
            return db_user

        if session:
            return _create(session)
        else:
            with self.get_session() as s:
                db_user = _create(s)
                s.commit()
                s.refresh(db_user)
                s.expunge(db_user)
                return db_user

    def get_user(self, user_id: str, session: Optional[Session] = None) -> Optional[User]:
        """Get a user by ID."""

        def _get(s: Session) -> Optional[User]:
            return s.get(User, user_id)

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    def get_user_by_email(self, email: str, session: Optional[Session] = None) -> Optional[User]:
        """Get a user by email address (case-insensitive)."""

        def _get(s: Session) -> Optional[User]:
            stmt = select(User).where(User.email == email.strip().lower())
            return s.execute(stmt).scalar_one_or_none()

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                user = _get(s)
                if user:
                    s.expunge(user)
                return user

    def list_users(self, session: Optional[Session] = None) -> list[User]:
        """Get all users ordered by name."""

        def _list(s: Session) -> list[User]:
            stmt = select(User).order_by(User.name)
            return list(s.execute(stmt).scalars().all())

        if session:
            return _list(session)
        else:
            with self.get_session() as s:
                users = _list(s)
                for user in users:
                    s.expunge(user)
                return users


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.engine.dispose()
    _db = None
