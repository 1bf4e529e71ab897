"""
Error taxonomy shared by every store and the command surface.
"""


class PharmacyError(Exception):
    """Base class; ``kind`` is the stable name reported to callers."""
    kind = "PharmacyError"


class DuplicateIdentifier(PharmacyError):
    kind = "DuplicateIdentifier"


class InsufficientStock(PharmacyError):
    kind = "InsufficientStock"

    def __init__(self, message: str, available: int = 0, requested: int = 0):
        super().__init__(message)
        self.available = available
        self.requested = requested


class Conflict(PharmacyError):
    kind = "Conflict"


class NotFound(PharmacyError):
    kind = "NotFound"


class ValidationError(PharmacyError):
    kind = "ValidationError"


class Unauthorized(PharmacyError):
    kind = "Unauthorized"


class StorageError(PharmacyError):
    """Persistence failure. Fatal; never retried by the core."""
    kind = "StorageError"
