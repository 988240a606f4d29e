"""Loan (issue) module.

Provides functionality for:
- Opening loans with a fixed due date
- Closing loans on return
- Overdue reporting
"""

from .ledger import LoanLedger, compute_due_date
from .models import Issue
from .schemas import IssueResponse, OverdueReport

__all__ = [
    "LoanLedger",
    "compute_due_date",
    "Issue",
    "IssueResponse",
    "OverdueReport",
]
