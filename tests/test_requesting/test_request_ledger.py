"""Tests for RequestLedger."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from lendingdesk.errors import ConflictError, InvalidStateError, NotFoundError
from lendingdesk.requesting import BookRequest, RequestLedger, RequestStatus

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(db):
    """Create a RequestLedger with test database."""
    return RequestLedger(db)


class TestCreateRequest:
    """Tests for submitting requests."""

    def test_create_pending_request(self, db, ledger, book_id):
        """Test a new request starts pending with its request date."""
        with db.transaction() as session:
            request = ledger.create_request("user-1", book_id, T0, session)
            assert request.status == RequestStatus.PENDING.value
            assert request.request_date == T0.isoformat()
            assert request.response_date is None
            assert request.is_pending

    def test_duplicate_pending_request_conflicts(self, db, ledger, book_id):
        """Test a second pending request for the same pair is refused."""
        with db.transaction() as session:
            ledger.create_request("user-1", book_id, T0, session)

        with pytest.raises(ConflictError, match="pending request"):
            with db.transaction() as session:
                ledger.create_request("user-1", book_id, T0, session)

    def test_other_user_may_request_same_book(self, db, ledger, book_id):
        """Test the pending rule is per (user, book)."""
        with db.transaction() as session:
            ledger.create_request("user-1", book_id, T0, session)
            ledger.create_request("user-2", book_id, T0, session)
            assert len(ledger.list_requests(session, book_id=book_id)) == 2

    def test_unique_index_backs_pending_rule(self, db, book_id):
        """Test the database refuses a second pending row even without the ledger check."""
        with pytest.raises(IntegrityError):
            with db.transaction() as session:
                for _ in range(2):
                    session.add(
                        BookRequest(
                            user_id="user-1",
                            book_id=book_id,
                            status="pending",
                            request_date=T0.isoformat(),
                        )
                    )
                    session.flush()


class TestTransitions:
    """Tests for approving and rejecting."""

    def test_approve(self, db, ledger, book_id):
        """Test approving sets status and response date."""
        with db.transaction() as session:
            request = ledger.create_request("user-1", book_id, T0, session)
            ledger.mark_approved(request, T0 + timedelta(hours=1), session, responded_by="admin")
            assert request.status == RequestStatus.APPROVED.value
            assert request.response_date == (T0 + timedelta(hours=1)).isoformat()
            assert request.responded_by == "admin"

    def test_reject_with_message(self, db, ledger, book_id):
        """Test rejecting records the reason."""
        with db.transaction() as session:
            request = ledger.create_request("user-1", book_id, T0, session)
            ledger.mark_rejected(request, T0, session, message="Damaged copy")
            assert request.status == RequestStatus.REJECTED.value
            assert request.response_message == "Damaged copy"

    @pytest.mark.parametrize("first", ["approve", "reject"])
    def test_terminal_states_are_final(self, db, ledger, book_id, first):
        """Test no transition leaves approved or rejected."""
        with db.transaction() as session:
            request = ledger.create_request("user-1", book_id, T0, session)
            if first == "approve":
                ledger.mark_approved(request, T0, session)
            else:
                ledger.mark_rejected(request, T0, session)

            with pytest.raises(InvalidStateError, match="Request is already"):
                ledger.mark_approved(request, T0, session)
            with pytest.raises(InvalidStateError):
                ledger.mark_rejected(request, T0, session)

    def test_new_request_allowed_after_decision(self, db, ledger, book_id):
        """Test a user may ask again once the earlier request is decided."""
        with db.transaction() as session:
            request = ledger.create_request("user-1", book_id, T0, session)
            ledger.mark_rejected(request, T0, session)
            again = ledger.create_request("user-1", book_id, T0, session)
            assert again.is_pending


class TestQueries:
    """Tests for lookups and listings."""

    def test_get_missing_request(self, db, ledger):
        """Test fetching an unknown request raises NotFoundError."""
        with db.get_session() as session:
            with pytest.raises(NotFoundError):
                ledger.get_request("nope", session)

    def test_newest_first(self, db, ledger, catalog):
        """Test user listings put the most recent request first."""
        from lendingdesk.db.schemas import BookCreate

        first = catalog.create_book(BookCreate(title="A", author="X")).id
        second = catalog.create_book(BookCreate(title="B", author="X")).id
        with db.transaction() as session:
            ledger.create_request("user-1", first, T0, session)
            ledger.create_request("user-1", second, T0 + timedelta(days=1), session)

        with db.get_session() as session:
            listed = ledger.list_requests(session, user_id="user-1", newest_first=True)
            assert [r.book_id for r in listed] == [second, first]

    def test_default_order_is_insertion_order(self, db, ledger, book_id):
        """Test admin listings follow insertion even when timestamps disagree."""
        with db.transaction() as session:
            for user in ("user-1", "user-2", "user-3"):
                ledger.create_request(user, book_id, T0, session)
            # Stamp later rows with earlier timestamps
            for user, year in (("user-1", 2003), ("user-2", 2002), ("user-3", 2001)):
                session.execute(
                    update(BookRequest)
                    .where(BookRequest.user_id == user)
                    .values(created_at=f"{year}-01-01T00:00:00+00:00")
                )

        with db.get_session() as session:
            listed = ledger.list_requests(session)
            assert [r.user_id for r in listed] == ["user-1", "user-2", "user-3"]

    def test_newest_first_breaks_ties_by_insertion(self, db, ledger, book_id):
        """Test requests made at the same instant list the later one first."""
        with db.transaction() as session:
            ledger.create_request("user-1", book_id, T0, session)
            ledger.create_request("user-2", book_id, T0, session)

        with db.get_session() as session:
            listed = ledger.list_requests(session, book_id=book_id, newest_first=True)
            assert [r.user_id for r in listed] == ["user-2", "user-1"]

    def test_count_pending_for_book(self, db, ledger, book_id):
        """Test only pending requests are counted."""
        with db.transaction() as session:
            decided = ledger.create_request("user-1", book_id, T0, session)
            ledger.mark_approved(decided, T0, session)
            ledger.create_request("user-2", book_id, T0, session)
            assert ledger.count_pending_for_book(book_id, session) == 1
