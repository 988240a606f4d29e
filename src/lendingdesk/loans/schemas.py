"""Pydantic schemas for loans."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from ..db.schemas import BookResponse, UserSummary


class IssueResponse(BaseModel):
    """Schema for loan responses."""

    id: UUID
    user_id: str
    book_id: UUID
    request_id: Optional[UUID] = None
    issued_by: Optional[str] = None
    issue_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    is_returned: bool
    is_overdue: bool
    days_until_due: int
    days_overdue: int

    # Related data (populated by the coordinator)
    book: Optional[BookResponse] = None
    requester: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class OverdueReport(BaseModel):
    """Report of open loans past their due date."""

    issues: list[IssueResponse]
    total_overdue: int
    oldest_overdue_days: int
