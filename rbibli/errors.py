# rbibli/errors.py
from typing import List, Optional


class LibraryError(Exception):
    """Base exception for catalog and loan errors.

    Every subclass carries a stable ``code`` so a transport layer can map
    failures to client-facing error codes without string matching.
    """

    code = "library_error"


class NotFoundError(LibraryError):
    """A referenced entity id does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class ConflictError(LibraryError):
    """Uniqueness violation, blocked deletion, location cycle or lost checkout race."""

    code = "conflict"

    def __init__(self, message: str, blocking: Optional[List[str]] = None):
        self.blocking = list(blocking or [])
        if self.blocking:
            message = f"{message} (blocked by: {', '.join(self.blocking)})"
        super().__init__(message)


class InvalidStateError(LibraryError):
    """Operation is not valid for the loan's current state."""

    code = "invalid_state"


class PolicyExceededError(LibraryError):
    """Renewal limit reached."""

    code = "policy_exceeded"


class NotLoanableError(LibraryError):
    """Checkout attempted on a volume that is not loanable."""

    code = "not_loanable"


class ValidationError(LibraryError, ValueError):
    """Malformed input."""

    code = "validation"
