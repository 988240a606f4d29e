"""SQLAlchemy ORM models for the catalog and user directory.

Tables:
- books: Catalog entries with their available quantity
- users: Local directory of known identities (name, email, role)
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import CheckConstraint, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .schemas import Role


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class Book(Base):
    """Book model - a catalog entry and its available copy count."""

    __tablename__ = "books"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Copies available for loan right now
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, onupdate=utcnow_iso)

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', quantity={self.quantity})>"

    @property
    def is_available(self) -> bool:
        """Check if at least one copy can be lent."""
        return self.quantity > 0


class User(Base):
    """User model - identities known to the lending desk."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.PATRON.value)

    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role={self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value
