"""Request ledger: storage and lifecycle of book requests."""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, literal_column, select
from sqlalchemy.orm import Session

from ..db.sqlite import Database, get_db
from ..errors import ConflictError, InvalidStateError, NotFoundError
from .models import BookRequest
from .schemas import RequestStatus

# SQLite row id, increasing with every insert
_INSERTION_ORDER = literal_column(f"{BookRequest.__tablename__}.rowid")


class RequestLedger:
    """Holds BookRequest records.

    The ledger owns field-level rules for requests: one pending request per
    (user, book) and no transition out of a terminal status. It never looks
    at books or loans.
    """

    def __init__(self, db: Optional[Database] = None):
        """Initialize request ledger.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def find_pending(self, user_id: str, book_id: str, session: Session) -> Optional[BookRequest]:
        """Get the pending request for a (user, book) pair, if any."""
        stmt = select(BookRequest).where(
            BookRequest.user_id == str(user_id),
            BookRequest.book_id == str(book_id),
            BookRequest.status == RequestStatus.PENDING.value,
        )
        return session.execute(stmt).scalar_one_or_none()

    def create_request(
        self,
        user_id: str,
        book_id: str,
        requested_at: datetime,
        session: Session,
    ) -> BookRequest:
        """Insert a new pending request.

        Raises:
            ConflictError: If the user already has a pending request for the book
        """
        if self.find_pending(user_id, book_id, session):
            raise ConflictError("You already have a pending request for this book")

        request = BookRequest(
            user_id=str(user_id),
            book_id=str(book_id),
            status=RequestStatus.PENDING.value,
            request_date=requested_at.isoformat(),
        )
        session.add(request)
        session.flush()
        return request

    def get_request(
        self,
        request_id: str,
        session: Session,
        for_update: bool = False,
    ) -> BookRequest:
        """Get a request by ID.

        Raises:
            NotFoundError: If no such request exists
        """
        stmt = select(BookRequest).where(BookRequest.id == str(request_id))
        if for_update:
            stmt = stmt.with_for_update()
        request = session.execute(stmt).scalar_one_or_none()
        if not request:
            raise NotFoundError("Request not found")
        return request

    @staticmethod
    def ensure_pending(request: BookRequest) -> None:
        """Raise InvalidStateError unless the request awaits a decision."""
        if not request.is_pending:
            raise InvalidStateError(f"Request is already {request.status}")

    def _respond(
        self,
        request: BookRequest,
        status: RequestStatus,
        responded_at: datetime,
        responded_by: Optional[str],
        message: Optional[str],
        session: Session,
    ) -> BookRequest:
        self.ensure_pending(request)
        request.status = status.value
        request.response_date = responded_at.isoformat()
        request.responded_by = responded_by
        request.response_message = message
        session.flush()
        return request

    def mark_approved(
        self,
        request: BookRequest,
        responded_at: datetime,
        session: Session,
        responded_by: Optional[str] = None,
    ) -> BookRequest:
        """Move a pending request to approved."""
        return self._respond(
            request, RequestStatus.APPROVED, responded_at, responded_by, None, session
        )

    def mark_rejected(
        self,
        request: BookRequest,
        responded_at: datetime,
        session: Session,
        responded_by: Optional[str] = None,
        message: Optional[str] = None,
    ) -> BookRequest:
        """Move a pending request to rejected, recording the reason."""
        return self._respond(
            request, RequestStatus.REJECTED, responded_at, responded_by, message, session
        )

    def list_requests(
        self,
        session: Session,
        user_id: Optional[str] = None,
        book_id: Optional[str] = None,
        status: Optional[RequestStatus] = None,
        newest_first: bool = False,
    ) -> list[BookRequest]:
        """List requests with optional filters.

        Args:
            user_id: Filter by requester
            book_id: Filter by book
            status: Filter by status
            newest_first: Order by request date, most recent first.
                Otherwise records come back in insertion order.
        """
        stmt = select(BookRequest)

        if user_id:
            stmt = stmt.where(BookRequest.user_id == str(user_id))
        if book_id:
            stmt = stmt.where(BookRequest.book_id == str(book_id))
        if status:
            stmt = stmt.where(BookRequest.status == status.value)

        if newest_first:
            stmt = stmt.order_by(BookRequest.request_date.desc(), _INSERTION_ORDER.desc())
        else:
            stmt = stmt.order_by(_INSERTION_ORDER)

        return list(session.execute(stmt).scalars().all())

    def count_pending_for_book(self, book_id: str, session: Session) -> int:
        """Count pending requests referencing a book."""
        stmt = select(func.count()).where(
            BookRequest.book_id == str(book_id),
            BookRequest.status == RequestStatus.PENDING.value,
        )
        return session.execute(stmt).scalar() or 0
