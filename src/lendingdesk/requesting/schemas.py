"""Pydantic schemas for book requests."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from ..db.schemas import BookResponse, UserSummary


class RequestStatus(str, Enum):
    """Status of a book request."""

    PENDING = "pending"
    APPROVED = "approved"  # terminal
    REJECTED = "rejected"  # terminal


class RequestResponse(BaseModel):
    """Schema for request responses."""

    id: UUID
    user_id: str
    book_id: UUID
    status: RequestStatus
    request_date: datetime
    response_date: Optional[datetime] = None
    response_message: Optional[str] = None
    responded_by: Optional[str] = None

    # Related data (populated by the coordinator)
    book: Optional[BookResponse] = None
    requester: Optional[UserSummary] = None

    model_config = {"from_attributes": True}
