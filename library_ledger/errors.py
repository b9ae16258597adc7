class CirculationError(Exception):
    """Base exception for circulation ledger errors."""


class InvalidInput(CirculationError, ValueError):
    """A required field is missing or malformed (empty borrower, non-integer copies)."""


class NotFound(CirculationError, LookupError):
    """The item or loan record does not exist."""


class CapacityExhausted(CirculationError):
    """Borrow attempted while every copy of the item is out."""


class CapacityConflict(CirculationError):
    """Total copies would drop below the number of open loans."""


class Conflict(CirculationError):
    """The operation clashes with current loan state (open loans on removal, record already closed)."""


class StorageError(CirculationError):
    """Unexpected failure of the underlying database."""
