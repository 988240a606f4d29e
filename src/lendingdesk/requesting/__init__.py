"""Book request module.

Provides functionality for:
- Recording patron requests to borrow a book
- Approving or rejecting pending requests
"""

from .ledger import RequestLedger
from .models import BookRequest
from .schemas import RequestResponse, RequestStatus

__all__ = [
    "RequestLedger",
    "BookRequest",
    "RequestResponse",
    "RequestStatus",
]
