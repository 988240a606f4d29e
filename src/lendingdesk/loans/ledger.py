"""Loan ledger: storage and lifecycle of issues."""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, literal_column, select
from sqlalchemy.orm import Session

from ..db.sqlite import Database, get_db
from ..errors import ConflictError, NotFoundError
from .models import Issue

# SQLite row id, increasing with every insert
_INSERTION_ORDER = literal_column(f"{Issue.__tablename__}.rowid")


def compute_due_date(issue_date: datetime, loan_period: timedelta) -> datetime:
    """Due date of a loan issued at ``issue_date``."""
    return issue_date + loan_period


class LoanLedger:
    """Holds Issue records.

    The ledger owns field-level rules for loans: one open loan per
    (user, book), due dates derived from the loan period, and no reopening
    of a returned loan. Book quantities are the coordinator's business.
    """

    def __init__(self, loan_period: timedelta, db: Optional[Database] = None):
        """Initialize loan ledger.

        Args:
            loan_period: Fixed duration of every loan
            db: Database instance
        """
        self.loan_period = loan_period
        self.db = db or get_db()

    def find_open(
        self,
        user_id: str,
        book_id: str,
        session: Session,
        for_update: bool = False,
    ) -> Optional[Issue]:
        """Get the open loan for a (user, book) pair, if any."""
        stmt = select(Issue).where(
            Issue.user_id == str(user_id),
            Issue.book_id == str(book_id),
            Issue.is_returned.is_(False),
        )
        if for_update:
            stmt = stmt.with_for_update()
        return session.execute(stmt).scalar_one_or_none()

    def open_issue(
        self,
        user_id: str,
        book_id: str,
        issued_at: datetime,
        session: Session,
        issued_by: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Issue:
        """Create an open loan due one loan period after ``issued_at``.

        Raises:
            ConflictError: If the user already holds an open loan for the book
        """
        if self.find_open(user_id, book_id, session):
            raise ConflictError("User already has an open loan for this book")

        issue = Issue(
            user_id=str(user_id),
            book_id=str(book_id),
            request_id=str(request_id) if request_id else None,
            issued_by=issued_by,
            issue_date=issued_at.isoformat(),
            due_date=compute_due_date(issued_at, self.loan_period).isoformat(),
            is_returned=False,
        )
        session.add(issue)
        session.flush()
        return issue

    def close_issue(
        self,
        user_id: str,
        book_id: str,
        returned_at: datetime,
        session: Session,
    ) -> Issue:
        """Mark the open loan for a (user, book) pair as returned.

        Raises:
            NotFoundError: If there is no open loan, including one already returned
        """
        issue = self.find_open(user_id, book_id, session, for_update=True)
        if not issue:
            raise NotFoundError("No such issued book found")

        issue.return_date = returned_at.isoformat()
        issue.is_returned = True
        session.flush()
        return issue

    def list_issues(
        self,
        session: Session,
        user_id: Optional[str] = None,
        book_id: Optional[str] = None,
        open_only: bool = False,
        overdue_at: Optional[datetime] = None,
        newest_first: bool = False,
    ) -> list[Issue]:
        """List loans with optional filters.

        Args:
            user_id: Filter by borrower
            book_id: Filter by book
            open_only: Only loans not yet returned
            overdue_at: Only open loans due before this moment
            newest_first: Order by issue date, most recent first.
                Otherwise records come back in insertion order.
        """
        stmt = select(Issue)

        if user_id:
            stmt = stmt.where(Issue.user_id == str(user_id))
        if book_id:
            stmt = stmt.where(Issue.book_id == str(book_id))
        if open_only:
            stmt = stmt.where(Issue.is_returned.is_(False))
        if overdue_at:
            stmt = stmt.where(
                Issue.is_returned.is_(False),
                Issue.due_date < overdue_at.isoformat(),
            )

        if newest_first:
            stmt = stmt.order_by(Issue.issue_date.desc(), _INSERTION_ORDER.desc())
        else:
            stmt = stmt.order_by(_INSERTION_ORDER)

        return list(session.execute(stmt).scalars().all())

    def count_open_for_book(self, book_id: str, session: Session) -> int:
        """Count open loans referencing a book."""
        stmt = select(func.count()).where(
            Issue.book_id == str(book_id),
            Issue.is_returned.is_(False),
        )
        return session.execute(stmt).scalar() or 0
