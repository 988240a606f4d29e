"""Database module for local SQLite storage."""

from .models import Base, Book, User
from .schemas import BookCreate, BookUpdate, BookResponse, Role, UserCreate, UserResponse, UserSummary
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Base",
    "Book",
    "User",
    "BookCreate",
    "BookUpdate",
    "BookResponse",
    "Role",
    "UserCreate",
    "UserResponse",
    "UserSummary",
    "Database",
    "get_db",
    "reset_db",
]
