"""RCTI state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from rcti_engine.errors import ConflictError, InvalidTransitionError

if TYPE_CHECKING:
    from rcti_engine.models import Rcti


class RctiStatus(str, Enum):
    """RCTI status values."""

    DRAFT = "draft"
    FINALISED = "finalised"
    PAID = "paid"


def _status_value(status: str) -> str:
    return status.value if isinstance(status, Enum) else status


class RctiStateMachine:
    """State machine for RCTI status transitions.

    Allowed transitions:
    - draft → finalised (applies deductions)
    - finalised → paid
    - finalised → draft (revert, only while unpaid; reverses deductions)

    Paid is terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RctiStatus.DRAFT.value: [RctiStatus.FINALISED.value],
        RctiStatus.FINALISED.value: [RctiStatus.PAID.value, RctiStatus.DRAFT.value],
        RctiStatus.PAID.value: [],  # Terminal state
    }

    # Statuses where lines and GST settings can be modified
    LINES_MUTABLE = {RctiStatus.DRAFT.value}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_status_value(from_status), [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition.

        Raises ConflictError when leaving paid, InvalidTransitionError otherwise.
        """
        if from_status == RctiStatus.PAID:
            raise ConflictError(f"Cannot change status of a paid RCTI (requested '{to_status}')")
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_modify_lines(cls, status: str) -> bool:
        """Check if lines (and GST settings) can be modified."""
        return _status_value(status) in cls.LINES_MUTABLE

    @classmethod
    def ensure_lines_mutable(cls, rcti: Rcti) -> None:
        """Raise ConflictError unless the RCTI is a draft."""
        if not cls.can_modify_lines(rcti.status):
            raise ConflictError(
                f"Cannot modify lines of a {rcti.status} RCTI; only draft RCTIs are editable"
            )

    @classmethod
    def is_revert(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a revert (finalised → draft)."""
        return from_status == RctiStatus.FINALISED and to_status == RctiStatus.DRAFT

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(_status_value(current_status), [])

    @classmethod
    def validate_rcti_for_transition(cls, rcti: Rcti, to_status: str) -> None:
        """Validate an RCTI for a specific transition.

        Expects ``rcti.lines`` to be loaded when finalising.
        """
        from_status = rcti.status
        cls.validate_transition(from_status, to_status)

        if to_status == RctiStatus.FINALISED and not rcti.lines:
            raise InvalidTransitionError(from_status, to_status, "RCTI has no lines")

        if cls.is_revert(from_status, to_status) and rcti.paid_at is not None:
            raise ConflictError("Cannot revert to draft after payment")
