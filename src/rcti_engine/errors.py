"""Domain errors raised by the RCTI engine.

Optimistic-lock losses during deduction application are not errors and have
no exception type; the affected deduction is simply left out of the pass.
"""

from __future__ import annotations


class RctiError(Exception):
    """Base class for all engine errors."""


class ValidationError(RctiError):
    """Malformed input or an invalid status transition."""


class ConflictError(RctiError):
    """Mutation refused because of the current state of a record."""


class NotFoundError(RctiError):
    """Referenced record does not exist."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class PersistenceError(RctiError):
    """Storage or transaction failure. The transaction has been rolled back."""


class InvalidTransitionError(ValidationError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
