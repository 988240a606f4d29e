"""Lending coordination module.

Provides functionality for:
- Submitting, approving and rejecting book requests
- Issuing and returning books
- Patron and administrator views of requests and loans
"""

from .coordinator import LendingCoordinator
from .schemas import Actor, ApprovalResponse

__all__ = [
    "LendingCoordinator",
    "Actor",
    "ApprovalResponse",
]
