"""Sample catalog and users for a fresh lending desk."""

from typing import Optional

from sqlalchemy import select

from ..db.models import Book, User
from ..db.schemas import BookCreate, Role, UserCreate
from ..db.sqlite import Database
from .store import CatalogStore

SAMPLE_BOOKS = [
    BookCreate(title="The Midnight Library", author="Matt Haig", quantity=8,
               description="A library between life and death where every book is another life."),
    BookCreate(title="Klara and the Sun", author="Kazuo Ishiguro", quantity=5,
               description="An artificial friend observes the family she serves."),
    BookCreate(title="Project Hail Mary", author="Andy Weir", quantity=12,
               description="A lone astronaut wakes up with no memory and one mission."),
    BookCreate(title="Dune", author="Frank Herbert", quantity=15,
               description="Paul Atreides and the desert planet Arrakis."),
    BookCreate(title="The Song of Achilles", author="Madeline Miller", quantity=9),
    BookCreate(title="Circe", author="Madeline Miller", quantity=10),
    BookCreate(title="Foundation", author="Isaac Asimov", quantity=13),
    BookCreate(title="Educated", author="Tara Westover", quantity=4),
    BookCreate(title="The Night Circus", author="Erin Morgenstern", quantity=9),
    BookCreate(title="The Hobbit", author="J.R.R. Tolkien", quantity=19),
    BookCreate(title="To Kill a Mockingbird", author="Harper Lee", quantity=5,
               description="A classic novel about racial injustice in the American South."),
    BookCreate(title="1984", author="George Orwell", quantity=3,
               description="A dystopian novel of surveillance and control."),
]

SAMPLE_USERS = [
    UserCreate(name="Admin User", email="admin@example.com", role=Role.ADMIN),
    UserCreate(name="Student User", email="student@example.com", role=Role.PATRON),
]


def seed_catalog(db: Database, books: Optional[list[BookCreate]] = None) -> int:
    """Add sample books whose titles are not in the catalog yet.

    Returns:
        Number of books added
    """
    store = CatalogStore(db)
    added = 0
    with db.transaction() as session:
        existing = set(session.execute(select(Book.title)).scalars().all())
        for data in books if books is not None else SAMPLE_BOOKS:
            if data.title in existing:
                continue
            store.create_book(data, session=session)
            existing.add(data.title)
            added += 1
    return added


def seed_users(db: Database, users: Optional[list[UserCreate]] = None) -> int:
    """Add sample users whose email addresses are not registered yet.

    Returns:
        Number of users added
    """
    added = 0
    with db.transaction() as session:
        existing = set(session.execute(select(User.email)).scalars().all())
        for data in users if users is not None else SAMPLE_USERS:
            if data.email in existing:
                continue
            db.create_user(data, session=session)
            existing.add(data.email)
            added += 1
    return added
