"""SQLAlchemy models for book requests.

Tables:
- book_requests: A patron's ask to borrow a book and its disposition
"""

from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from ..db.models import Base, generate_uuid, utcnow_iso
from .schemas import RequestStatus


class BookRequest(Base):
    """Request model - pending, approved or rejected."""

    __tablename__ = "book_requests"
    __table_args__ = (
        # At most one pending request per (user, book)
        Index(
            "uq_book_requests_pending",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Opaque identity of the requester
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    book_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RequestStatus.PENDING.value, index=True
    )

    # Dates (ISO datetimes, UTC)
    request_date: Mapped[str] = mapped_column(String(32), nullable=False)
    response_date: Mapped[Optional[str]] = mapped_column(String(32))

    # Disposition
    response_message: Mapped[Optional[str]] = mapped_column(Text)
    responded_by: Mapped[Optional[str]] = mapped_column(String(36))

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utcnow_iso, onupdate=utcnow_iso)

    def __repr__(self) -> str:
        return f"<BookRequest(id={self.id}, book_id={self.book_id}, status={self.status})>"

    @property
    def is_pending(self) -> bool:
        """Check if the request still awaits a decision."""
        return self.status == RequestStatus.PENDING.value
