"""Leave application state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from smartid.errors import StateError, ValidationError


class LeaveStatus(str, Enum):
    """Leave application status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveAction(str, Enum):
    """Decisions an approver can take."""

    APPROVE = "approve"
    REJECT = "reject"


class InvalidTransitionError(StateError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.to_status = to_status
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=from_status)


class LeaveStateMachine:
    """State machine for leave application status transitions.

    Allowed transitions:
    - pending → approved
    - pending → rejected

    Approved and rejected are terminal. Intermediate approval levels keep
    the application pending.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        LeaveStatus.PENDING.value: [LeaveStatus.APPROVED.value, LeaveStatus.REJECTED.value],
        LeaveStatus.APPROVED.value: [],
        LeaveStatus.REJECTED.value: [],
    }

    ACTION_TARGETS: dict[str, str] = {
        LeaveAction.APPROVE.value: LeaveStatus.APPROVED.value,
        LeaveAction.REJECT.value: LeaveStatus.REJECTED.value,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further transitions are possible."""
        return not cls.VALID_TRANSITIONS.get(status, [])

    @classmethod
    def target_for(cls, action: str) -> str:
        """Map an approver action to the status it leads to."""
        try:
            return cls.ACTION_TARGETS[LeaveAction(action).value]
        except ValueError:
            raise ValidationError('Action must be either "approve" or "reject"') from None

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def validate_decision(cls, current_status: str, action: str) -> str:
        """Validate an approve/reject decision, returning the target status."""
        to_status = cls.target_for(action)
        if not cls.can_transition(current_status, to_status):
            raise InvalidTransitionError(
                current_status,
                to_status,
                f"Cannot {LeaveAction(action).value} application with status: {current_status}",
            )
        return to_status
