"""Error types raised by lending operations.

Domain errors derive from ``LendingError`` (itself a ``ValueError``) and
carry a ``kind`` plus a human-readable reason. Infrastructure failures are
raised as ``StorageError``, which is intentionally outside that hierarchy.
"""


class LendingError(ValueError):
    """Base class for lending rule violations."""

    kind = "error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFoundError(LendingError):
    """Raised when a referenced entity does not exist."""

    kind = "not_found"


class ValidationError(LendingError):
    """Raised when a required field is missing or invalid."""

    kind = "validation"


class ConflictError(LendingError):
    """Raised for a duplicate pending request or a duplicate open loan."""

    kind = "conflict"


class InvalidStateError(LendingError):
    """Raised when an operation is not legal in the current state."""

    kind = "invalid_state"


class ForbiddenError(LendingError):
    """Raised when the caller's role does not allow the operation."""

    kind = "forbidden"


class StorageError(RuntimeError):
    """Raised when the database fails for reasons unrelated to lending rules."""

    kind = "storage"
