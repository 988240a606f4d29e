"""Lending coordinator: the rules tying books, requests and loans together.

Every mutating operation runs inside a single writer transaction. All
preconditions are checked before the first write, and any failure rolls the
whole operation back, so callers never observe a half-applied change.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..catalog.store import CatalogStore
from ..config import Config, get_config
from ..db.models import Book, User
from ..db.schemas import BookCreate, BookResponse, BookUpdate, UserSummary
from ..db.sqlite import Database, get_db
from ..errors import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    LendingError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from ..loans.ledger import LoanLedger
from ..loans.models import Issue
from ..loans.schemas import IssueResponse, OverdueReport
from ..requesting.ledger import RequestLedger
from ..requesting.models import BookRequest
from ..requesting.schemas import RequestResponse
from .schemas import Actor, ApprovalResponse

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validation_reason(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        parts.append(f"{field}: {error['msg']}" if field else error["msg"])
    return "; ".join(parts)


def _integrity_reason(exc: IntegrityError) -> LendingError:
    """Map a constraint violation raised by a concurrent writer to a domain error."""
    message = str(exc.orig)
    if "book_requests" in message:
        return ConflictError("You already have a pending request for this book")
    if "issues" in message:
        return ConflictError("User already has an open loan for this book")
    if "quantity" in message:
        return InvalidStateError("Book is not available")
    return ConflictError("Conflicting update, please retry")


class LendingCoordinator:
    """Orchestrates the catalog, the request ledger and the loan ledger."""

    def __init__(
        self,
        db: Optional[Database] = None,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the coordinator.

        Args:
            db: Database instance
            config: Lending policy and storage settings
            clock: Returns the current time; defaults to UTC now
        """
        self.db = db or get_db()
        self.config = config or get_config()
        self._clock = clock or _utcnow
        self.catalog = CatalogStore(self.db)
        self.requests = RequestLedger(self.db)
        self.loans = LoanLedger(self.config.loan_period, self.db)

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    # -------------------------------------------------------------------------
    # Sessions and access checks
    # -------------------------------------------------------------------------

    @contextmanager
    def _session(self, operation: str, write: bool = True) -> Generator[Session, None, None]:
        """Open a unit of work, translating storage failures.

        Writer sessions hold the database write lock for their whole
        duration, which serializes every read-check-write sequence.
        """
        factory = self.db.transaction if write else self.db.get_session
        try:
            with factory() as session:
                yield session
        except LendingError:
            raise
        except IntegrityError as e:
            logger.info("Constraint rejected %s: %s", operation, e.orig)
            raise _integrity_reason(e) from e
        except SQLAlchemyError as e:
            logger.exception("Storage failure during %s", operation)
            raise StorageError(f"Storage failure during {operation}: {e}") from e

    @staticmethod
    def _require_admin(actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise ForbiddenError(f"Only administrators can {action}")

    @staticmethod
    def _require_self_or_admin(actor: Actor, user_id: str, action: str) -> None:
        if str(user_id) != str(actor.user_id) and not actor.is_admin:
            raise ForbiddenError(f"Only administrators can {action} for other users")

    # -------------------------------------------------------------------------
    # Read-side joins
    # -------------------------------------------------------------------------

    @staticmethod
    def _books_by_id(session: Session, book_ids: set[str]) -> dict[str, BookResponse]:
        if not book_ids:
            return {}
        books = session.execute(select(Book).where(Book.id.in_(book_ids))).scalars().all()
        return {b.id: BookResponse.model_validate(b) for b in books}

    @staticmethod
    def _users_by_id(session: Session, user_ids: set[str]) -> dict[str, UserSummary]:
        if not user_ids:
            return {}
        users = session.execute(select(User).where(User.id.in_(user_ids))).scalars().all()
        return {u.id: UserSummary.model_validate(u) for u in users}

    def _present_requests(
        self,
        session: Session,
        requests: list[BookRequest],
        with_requester: bool = False,
    ) -> list[RequestResponse]:
        books = self._books_by_id(session, {r.book_id for r in requests})
        users = self._users_by_id(session, {r.user_id for r in requests}) if with_requester else {}
        return [
            RequestResponse.model_validate(r).model_copy(
                update={"book": books.get(r.book_id), "requester": users.get(r.user_id)}
            )
            for r in requests
        ]

    def _present_issues(
        self,
        session: Session,
        issues: list[Issue],
        with_requester: bool = False,
    ) -> list[IssueResponse]:
        books = self._books_by_id(session, {i.book_id for i in issues})
        users = self._users_by_id(session, {i.user_id for i in issues}) if with_requester else {}
        now = self._now()
        return [
            IssueResponse.model_validate(i).model_copy(
                update={
                    "book": books.get(i.book_id),
                    "requester": users.get(i.user_id),
                    "is_overdue": i.overdue_at(now),
                    "days_until_due": i.days_until_due_at(now),
                    "days_overdue": i.days_overdue_at(now),
                }
            )
            for i in issues
        ]

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def add_book(
        self,
        actor: Actor,
        title: str,
        author: str,
        description: Optional[str] = None,
        quantity: int = 1,
    ) -> BookResponse:
        """Add a book to the catalog (admin only).

        Raises:
            ForbiddenError: If the actor is not an administrator
            ValidationError: If title or author is empty, or quantity negative
        """
        self._require_admin(actor, "add books")
        try:
            data = BookCreate(
                title=title, author=author, description=description, quantity=quantity
            )
        except PydanticValidationError as e:
            raise ValidationError(_validation_reason(e)) from e

        with self._session("add_book") as session:
            book = self.catalog.create_book(data, session=session)
            response = BookResponse.model_validate(book)

        logger.info("Added book %s (%r, quantity %d)", response.id, response.title, response.quantity)
        return response

    def list_books(self) -> list[BookResponse]:
        """List the catalog ordered by title."""
        with self._session("list_books", write=False) as session:
            return [BookResponse.model_validate(b) for b in self.catalog.list_books(session=session)]

    def get_book(self, book_id: str) -> BookResponse:
        """Get one catalog entry.

        Raises:
            NotFoundError: If no such book exists
        """
        with self._session("get_book", write=False) as session:
            return BookResponse.model_validate(self.catalog.get_book(book_id, session=session))

    def update_book(self, actor: Actor, book_id: str, fields: dict[str, Any]) -> BookResponse:
        """Update catalog fields of a book (admin only).

        Raises:
            ForbiddenError: If the actor is not an administrator
            ValidationError: If a field value is invalid
            NotFoundError: If no such book exists
        """
        self._require_admin(actor, "update books")
        try:
            data = BookUpdate(**fields)
        except PydanticValidationError as e:
            raise ValidationError(_validation_reason(e)) from e

        with self._session("update_book") as session:
            book = self.catalog.update_book(book_id, data, session=session)
            response = BookResponse.model_validate(book)

        logger.info("Updated book %s", response.id)
        return response

    def delete_book(self, actor: Actor, book_id: str) -> None:
        """Delete a book and its closed history (admin only).

        Raises:
            ForbiddenError: If the actor is not an administrator
            NotFoundError: If no such book exists
            InvalidStateError: If open loans or pending requests reference the book
        """
        self._require_admin(actor, "delete books")
        with self._session("delete_book") as session:
            self.catalog.get_book(book_id, session=session, for_update=True)
            open_loans = self.loans.count_open_for_book(book_id, session)
            pending = self.requests.count_pending_for_book(book_id, session)
            if open_loans or pending:
                raise InvalidStateError(
                    f"Book has {open_loans} open loan(s) and {pending} pending request(s)"
                )
            self.catalog.delete_book(book_id, session=session)

        logger.info("Deleted book %s", book_id)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def submit_request(self, actor: Actor, book_id: str) -> RequestResponse:
        """Ask to borrow a book.

        Availability is not checked here: many patrons may request a scarce
        book, and stock is settled when an administrator decides.

        Raises:
            NotFoundError: If no such book exists
            ConflictError: If a pending request or an open loan already exists
        """
        user_id = str(actor.user_id)
        with self._session("submit_request") as session:
            book = self.catalog.get_book(book_id, session=session)
            if self.requests.find_pending(user_id, book.id, session):
                raise ConflictError("You already have a pending request for this book")
            if self.loans.find_open(user_id, book.id, session):
                raise ConflictError("You have already borrowed this book")

            request = self.requests.create_request(user_id, book.id, self._now(), session)
            response = self._present_requests(session, [request])[0]

        logger.info("User %s requested book %s (request %s)", user_id, book_id, response.id)
        return response

    def approve_request(self, actor: Actor, request_id: str) -> ApprovalResponse:
        """Approve a pending request and issue the book (admin only).

        When ``approval_stock_check`` is on (the default) the book must have a
        copy available and one copy is taken, exactly as for a direct issue.

        Raises:
            ForbiddenError: If the actor is not an administrator
            NotFoundError: If the request or its book does not exist
            InvalidStateError: If the request is not pending, or no copy is available
            ConflictError: If the requester already holds an open loan for the book
        """
        self._require_admin(actor, "approve requests")
        with self._session("approve_request") as session:
            request = self.requests.get_request(request_id, session, for_update=True)
            self.requests.ensure_pending(request)
            book = self.catalog.get_book(request.book_id, session=session, for_update=True)
            if self.config.approval_stock_check and not book.is_available:
                raise InvalidStateError("Book is not available")
            if self.loans.find_open(request.user_id, book.id, session):
                raise ConflictError("User already has an open loan for this book")

            now = self._now()
            if self.config.approval_stock_check:
                self.catalog.adjust_quantity(book.id, -1, session=session)
            self.requests.mark_approved(request, now, session, responded_by=str(actor.user_id))
            issue = self.loans.open_issue(
                request.user_id,
                book.id,
                now,
                session,
                issued_by=str(actor.user_id),
                request_id=request.id,
            )
            response = ApprovalResponse(
                request=self._present_requests(session, [request])[0],
                issue=self._present_issues(session, [issue])[0],
            )

        logger.info(
            "Approved request %s: book %s issued to %s, due %s",
            request_id,
            response.issue.book_id,
            response.issue.user_id,
            response.issue.due_date.isoformat(),
        )
        return response

    def reject_request(
        self,
        actor: Actor,
        request_id: str,
        message: Optional[str] = None,
    ) -> RequestResponse:
        """Reject a pending request (admin only).

        Raises:
            ForbiddenError: If the actor is not an administrator
            NotFoundError: If the request does not exist
            InvalidStateError: If the request is not pending
        """
        self._require_admin(actor, "reject requests")
        with self._session("reject_request") as session:
            request = self.requests.get_request(request_id, session, for_update=True)
            self.requests.mark_rejected(
                request, self._now(), session, responded_by=str(actor.user_id), message=message
            )
            response = self._present_requests(session, [request])[0]

        logger.info("Rejected request %s", request_id)
        return response

    def get_request(self, actor: Actor, request_id: str) -> RequestResponse:
        """Get one request; patrons may only see their own.

        Another patron's request is reported exactly like an unknown ID, so
        request IDs cannot be probed for existence.

        Raises:
            NotFoundError: If the request does not exist or belongs to someone else
        """
        with self._session("get_request", write=False) as session:
            request = self.requests.get_request(request_id, session)
            if not actor.is_admin and str(request.user_id) != str(actor.user_id):
                raise NotFoundError("Request not found")
            return self._present_requests(session, [request], with_requester=actor.is_admin)[0]

    # -------------------------------------------------------------------------
    # Loans
    # -------------------------------------------------------------------------

    def issue_book(self, actor: Actor, user_id: str, book_id: str) -> IssueResponse:
        """Issue a book directly, bypassing the request flow.

        Patrons may issue to themselves; issuing on behalf of someone else
        requires an administrator.

        Raises:
            ForbiddenError: If a patron issues for another user
            NotFoundError: If no such book exists
            ConflictError: If the user already holds an open loan for the book
            InvalidStateError: If no copy is available
        """
        self._require_self_or_admin(actor, user_id, "issue books")
        with self._session("issue_book") as session:
            book = self.catalog.get_book(book_id, session=session, for_update=True)
            if self.loans.find_open(user_id, book.id, session):
                raise ConflictError("User already has an open loan for this book")
            if not book.is_available:
                raise InvalidStateError("Book is not available")

            self.catalog.adjust_quantity(book.id, -1, session=session)
            issue = self.loans.open_issue(
                user_id, book.id, self._now(), session, issued_by=str(actor.user_id)
            )
            response = self._present_issues(session, [issue])[0]

        logger.info(
            "Issued book %s to %s, due %s", book_id, user_id, response.due_date.isoformat()
        )
        return response

    def return_book(self, actor: Actor, user_id: str, book_id: str) -> IssueResponse:
        """Close the open loan of a book and put the copy back.

        Raises:
            ForbiddenError: If a patron returns for another user
            NotFoundError: If there is no open loan, or the book no longer exists
        """
        self._require_self_or_admin(actor, user_id, "return books")
        with self._session("return_book") as session:
            issue = self.loans.close_issue(user_id, book_id, self._now(), session)
            self.catalog.adjust_quantity(issue.book_id, 1, session=session)
            response = self._present_issues(session, [issue])[0]

        logger.info("User %s returned book %s", user_id, book_id)
        return response

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def list_user_requests(self, actor: Actor, user_id: Optional[str] = None) -> list[RequestResponse]:
        """List a user's requests, most recent first."""
        user_id = str(user_id or actor.user_id)
        self._require_self_or_admin(actor, user_id, "list requests")
        with self._session("list_user_requests", write=False) as session:
            requests = self.requests.list_requests(session, user_id=user_id, newest_first=True)
            return self._present_requests(session, requests)

    def list_all_requests(self, actor: Actor) -> list[RequestResponse]:
        """List every request with book and requester (admin only)."""
        self._require_admin(actor, "list all requests")
        with self._session("list_all_requests", write=False) as session:
            requests = self.requests.list_requests(session)
            return self._present_requests(session, requests, with_requester=True)

    def list_user_issues(self, actor: Actor, user_id: Optional[str] = None) -> list[IssueResponse]:
        """List a user's loans, most recent first."""
        user_id = str(user_id or actor.user_id)
        self._require_self_or_admin(actor, user_id, "list loans")
        with self._session("list_user_issues", write=False) as session:
            issues = self.loans.list_issues(session, user_id=user_id, newest_first=True)
            return self._present_issues(session, issues)

    def list_all_issues(self, actor: Actor) -> list[IssueResponse]:
        """List every loan with book and borrower (admin only)."""
        self._require_admin(actor, "list all loans")
        with self._session("list_all_issues", write=False) as session:
            issues = self.loans.list_issues(session)
            return self._present_issues(session, issues, with_requester=True)

    def list_overdue_issues(self, actor: Actor) -> OverdueReport:
        """Report open loans past their due date (admin only)."""
        self._require_admin(actor, "list overdue loans")
        now = self._now()
        with self._session("list_overdue_issues", write=False) as session:
            issues = self.loans.list_issues(session, overdue_at=now)
            responses = self._present_issues(session, issues, with_requester=True)

        oldest = max((issue.days_overdue for issue in responses), default=0)

        return OverdueReport(
            issues=responses,
            total_overdue=len(responses),
            oldest_overdue_days=oldest,
        )
