"""storestock — Typed inventory errors.

Every rejection carries a machine-readable ``code``, the HTTP status used by the
API layer, and ``line_errors``: one dict per offending request line so a caller
can highlight exactly which products/quantities are wrong.

    InventoryError
    +-- InvalidRequest            INVALID_REQUEST       400
    |   +-- LocationNotFound      LOCATION_NOT_FOUND    404
    |   +-- MovementNotFound      MOVEMENT_NOT_FOUND    404
    +-- LocationInactive          LOCATION_INACTIVE     409
    +-- InsufficientStock         INSUFFICIENT_STOCK    409
    +-- ConcurrencyConflict       CONCURRENCY_CONFLICT  409 (retryable)
    +-- PersistenceFailure        PERSISTENCE_FAILURE   503
    +-- LedgerImmutable           LEDGER_IMMUTABLE      500
"""
from typing import Any
from uuid import UUID


class InventoryError(Exception):
    """Base class. Subclasses set ``code`` and ``status_code``."""

    code = "INVENTORY_ERROR"
    status_code = 400
    retryable = False

    def __init__(self, message: str, line_errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.line_errors = line_errors or []

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field_errors": self.line_errors,
        }


class InvalidRequest(InventoryError):
    """Malformed transfer: endpoints, empty lines, non-positive quantity, self-transfer."""

    code = "INVALID_REQUEST"
    status_code = 400


class LocationNotFound(InvalidRequest):
    code = "LOCATION_NOT_FOUND"
    status_code = 404

    def __init__(self, location_id: UUID, role: str = "location"):
        super().__init__(f"{role.capitalize()} {location_id} not found")
        self.location_id = location_id
        self.role = role


class MovementNotFound(InvalidRequest):
    code = "MOVEMENT_NOT_FOUND"
    status_code = 404

    def __init__(self, movement_id: UUID):
        super().__init__(f"Movement {movement_id} not found")
        self.movement_id = movement_id


class LocationInactive(InventoryError):
    code = "LOCATION_INACTIVE"
    status_code = 409

    def __init__(self, location_id: UUID, role: str = "location"):
        super().__init__(f"{role.capitalize()} {location_id} is deactivated")
        self.location_id = location_id
        self.role = role


class InsufficientStock(InventoryError):
    """Raised once per request, listing every line that cannot be covered."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, line_errors: list[dict[str, Any]]):
        count = len(line_errors)
        super().__init__(
            f"Insufficient stock for {count} line{'s' if count != 1 else ''}",
            line_errors,
        )


class ConcurrencyConflict(InventoryError):
    """A concurrent write changed a balance between validation and commit. Safe to retry."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409
    retryable = True


class PersistenceFailure(InventoryError):
    """The ledger could not durably commit. Never retried automatically."""

    code = "PERSISTENCE_FAILURE"
    status_code = 503


class LedgerImmutable(InventoryError):
    """Attempt to update or delete a written movement record."""

    code = "LEDGER_IMMUTABLE"
    status_code = 500
