"""Schemas for the lending coordinator: caller identity and composite results."""

from dataclasses import dataclass

from pydantic import BaseModel

from ..db.schemas import Role
from ..loans.schemas import IssueResponse
from ..requesting.schemas import RequestResponse


@dataclass(frozen=True)
class Actor:
    """Identity and role attached to every coordinator call."""

    user_id: str
    role: Role = Role.PATRON

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def admin(cls, user_id: str) -> "Actor":
        return cls(user_id=str(user_id), role=Role.ADMIN)

    @classmethod
    def patron(cls, user_id: str) -> "Actor":
        return cls(user_id=str(user_id), role=Role.PATRON)


class ApprovalResponse(BaseModel):
    """Result of approving a request: the decided request and the new loan."""

    request: RequestResponse
    issue: IssueResponse
