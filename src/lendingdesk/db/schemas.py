"""Pydantic schemas for catalog and user data."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class Role(str, Enum):
    """Role attached to every caller identity."""

    ADMIN = "admin"
    PATRON = "patron"


def _require_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


# ============================================================================
# Book Schemas
# ============================================================================


class BookBase(BaseModel):
    """Base book fields common to create/update operations."""

    title: str = Field(..., min_length=1, max_length=500, description="Book title")
    author: str = Field(..., min_length=1, max_length=500, description="Primary author")
    description: Optional[str] = None


class BookCreate(BookBase):
    """Schema for adding a book to the catalog."""

    quantity: int = Field(default=1, ge=0, description="Copies available for loan")

    @field_validator("title", "author")
    @classmethod
    def not_blank(cls, v):
        """Reject whitespace-only titles and authors."""
        return _require_text(v)


class BookUpdate(BaseModel):
    """Schema for updating a book. All fields optional."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=0)

    model_config = {"extra": "forbid"}

    @field_validator("title", "author")
    @classmethod
    def not_blank(cls, v):
        """Reject whitespace-only titles and authors."""
        return _require_text(v)


class BookResponse(BookBase):
    """Schema for book responses."""

    id: UUID
    quantity: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_available(self) -> bool:
        return self.quantity > 0


# ============================================================================
# User Schemas
# ============================================================================


class UserCreate(BaseModel):
    """Schema for registering a user in the local directory."""

    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=200)
    role: Role = Role.PATRON

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        return _require_text(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        """Lower-case the address and require an @."""
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("must be an email address")
        return v


class UserSummary(BaseModel):
    """Requester identity exposed on admin views. No credential fields."""

    name: str
    email: str

    model_config = {"from_attributes": True}


class UserResponse(UserSummary):
    """Schema for user responses."""

    id: UUID
    role: Role
    created_at: datetime
