"""Domain errors raised by the queue engine.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with. Services raise these; routes let them propagate to the
exception handler registered in ``waitline.main``.
"""

from typing import Any, Dict, Optional


class QueueError(Exception):
    """Base class for queue engine errors."""

    code = "QUEUE_ERROR"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def extra(self) -> Dict[str, Any]:
        """Additional fields rendered next to ``code`` and ``detail``."""
        return {}


class CapacityExceeded(QueueError):
    """Raised when a join is rejected because the active set is full.

    Carries the wait the customer would have been quoted so the caller can
    tell them when to come back. Not meant to be retried blindly.
    """

    code = "QUEUE_FULL"
    status_code = 409

    def __init__(self, estimated_wait_minutes: int, active_count: int):
        self.estimated_wait_minutes = estimated_wait_minutes
        self.active_count = active_count
        super().__init__(
            f"Queue is full ({active_count} active parties). "
            f"Estimated wait: {estimated_wait_minutes} minutes"
        )

    def extra(self) -> Dict[str, Any]:
        return {
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "active_count": self.active_count,
        }


class InvalidTransition(QueueError):
    """Raised when an operation is attempted from a state that forbids it."""

    code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, entity: str, entity_id: Any, current: str, operation: str):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.operation = operation
        super().__init__(f"Cannot {operation} {entity} {entity_id} in state '{current}'")

    def extra(self) -> Dict[str, Any]:
        return {"current_state": self.current}


class NotFound(QueueError):
    """Raised when a referenced entry, table or reservation does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class TableUnavailable(QueueError):
    """Raised when a table is not free for seating (or deletion)."""

    code = "TABLE_UNAVAILABLE"
    status_code = 409

    def __init__(self, table_id: int, reason: str):
        self.table_id = table_id
        self.reason = reason
        super().__init__(f"Table {table_id} is unavailable: {reason}")


class ConcurrencyConflict(QueueError):
    """Raised when a checked-and-set write lost a race with another writer."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409

    def __init__(self, message: str, entity: Optional[str] = None):
        self.entity = entity
        super().__init__(message)


class InvalidRequest(QueueError):
    """Raised for arguments a service refuses outright (bad tier, bad size)."""

    code = "INVALID_REQUEST"
    status_code = 422


class DuplicateTable(QueueError):
    """Raised when a table label is already taken."""

    code = "DUPLICATE_TABLE"
    status_code = 409

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Table label '{label}' already exists")
