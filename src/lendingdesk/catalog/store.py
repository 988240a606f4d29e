"""Catalog store for book records and their available quantity."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.models import Book, utcnow_iso
from ..db.schemas import BookCreate, BookUpdate
from ..db.sqlite import Database, get_db
from ..errors import InvalidStateError, NotFoundError


class CatalogStore:
    """Reads and adjusts Book records.

    Every method accepts an optional session so callers can compose several
    steps into one transaction. Without one, each call commits on its own
    and returns detached objects.
    """

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog store.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def _run(self, fn, session: Optional[Session], detach: bool = True):
        if session:
            return fn(session)
        with self.db.get_session() as s:
            result = fn(s)
            s.flush()
            if detach:
                for obj in result if isinstance(result, list) else [result]:
                    if obj is not None:
                        s.expunge(obj)
            return result

    @staticmethod
    def _load(s: Session, book_id: str, for_update: bool = False) -> Book:
        stmt = select(Book).where(Book.id == str(book_id))
        if for_update:
            stmt = stmt.with_for_update()
        book = s.execute(stmt).scalar_one_or_none()
        if not book:
            raise NotFoundError("Book not found")
        return book

    def create_book(self, data: BookCreate, session: Optional[Session] = None) -> Book:
        """Add a book to the catalog.

        Args:
            data: Validated book fields

        Returns:
            Created book
        """

        def _create(s: Session) -> Book:
            book = Book(
                title=data.title,
                author=data.author,
                description=data.description,
                quantity=data.quantity,
            )
            s.add(book)
            s.flush()
            return book

        return self._run(_create, session)

    def get_book(
        self,
        book_id: str,
        session: Optional[Session] = None,
        for_update: bool = False,
    ) -> Book:
        """Get a book by ID.

        Raises:
            NotFoundError: If no such book exists
        """
        return self._run(lambda s: self._load(s, book_id, for_update), session)

    def find_book(self, book_id: str, session: Optional[Session] = None) -> Optional[Book]:
        """Get a book by ID, or None."""
        return self._run(lambda s: s.get(Book, str(book_id)), session)

    def list_books(self, session: Optional[Session] = None) -> list[Book]:
        """Get all books ordered by title."""

        def _list(s: Session) -> list[Book]:
            stmt = select(Book).order_by(Book.title)
            return list(s.execute(stmt).scalars().all())

        return self._run(_list, session)

    def adjust_quantity(
        self,
        book_id: str,
        delta: int,
        session: Optional[Session] = None,
    ) -> Book:
        """Change the available quantity of a book.

        Args:
            book_id: Book ID
            delta: Amount to add (negative to take copies out)

        Returns:
            Updated book

        Raises:
            NotFoundError: If no such book exists
            InvalidStateError: If the quantity would drop below zero
        """

        def _adjust(s: Session) -> Book:
            book = self._load(s, book_id, for_update=True)
            new_quantity = book.quantity + delta
            if new_quantity < 0:
                raise InvalidStateError("Book is not available")
            book.quantity = new_quantity
            book.updated_at = utcnow_iso()
            s.flush()
            return book

        return self._run(_adjust, session)

    def update_book(
        self,
        book_id: str,
        data: BookUpdate,
        session: Optional[Session] = None,
    ) -> Book:
        """Update catalog fields of a book.

        Raises:
            NotFoundError: If no such book exists
        """

        def _update(s: Session) -> Book:
            book = self._load(s, book_id, for_update=True)
            update_data = data.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if field in ("title", "author", "quantity") and value is None:
                    continue
                setattr(book, field, value)
            book.updated_at = utcnow_iso()
            s.flush()
            return book

        return self._run(_update, session)

    def delete_book(self, book_id: str, session: Optional[Session] = None) -> None:
        """Delete a book.

        Raises:
            NotFoundError: If no such book exists
        """

        def _delete(s: Session) -> None:
            book = self._load(s, book_id, for_update=True)
            s.delete(book)
            s.flush()

        self._run(_delete, session, detach=False)
