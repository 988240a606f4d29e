"""SQLAlchemy models for loans.

Tables:
- issues: Individual loan records, open until the book is returned
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.models import Base, generate_uuid, utcnow_iso


class Issue(Base):
    """Issue model - an active or closed loan."""

    __tablename__ = "issues"
    __table_args__ = (
        # At most one open loan per (user, book)
        Index(
            "uq_issues_open",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("is_returned = 0"),
            postgresql_where=text("NOT is_returned"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Opaque identity of the borrower
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    book_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Approved request this loan came from (None for direct issues)
    request_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("book_requests.id", ondelete="SET NULL")
    )
    issued_by: Mapped[Optional[str]] = mapped_column(String(36))

    # Dates (ISO datetimes, UTC)
    issue_date: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    due_date: Mapped[str] = mapped_column(String(32), nullable=False)
    return_date: Mapped[Optional[str]] = mapped_column(String(32))

    is_returned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, onupdate=utcnow_iso)

    def __repr__(self) -> str:
        return f"<Issue(id={self.id}, book_id={self.book_id}, returned={self.is_returned})>"

    @property
    def is_open(self) -> bool:
        return not self.is_returned

    def overdue_at(self, now: datetime) -> bool:
        """Check if the loan is still open past its due date at ``now``."""
        if self.is_returned:
            return False
        return datetime.fromisoformat(self.due_date) < now

    def days_until_due_at(self, now: datetime) -> int:
        """Calendar days from ``now`` until due (negative if overdue)."""
        due = datetime.fromisoformat(self.due_date).date()
        return (due - now.date()).days

    def days_overdue_at(self, now: datetime) -> int:
        """Calendar days overdue at ``now`` (0 if not overdue)."""
        if not self.overdue_at(now):
            return 0
        return max(0, -self.days_until_due_at(now))

    @property
    def is_overdue(self) -> bool:
        """Check if loan is overdue."""
        return self.overdue_at(datetime.now(timezone.utc))

    @property
    def days_until_due(self) -> int:
        """Days until due (negative if overdue)."""
        return self.days_until_due_at(datetime.now(timezone.utc))

    @property
    def days_overdue(self) -> int:
        """Days overdue (0 if not overdue)."""
        return self.days_overdue_at(datetime.now(timezone.utc))
