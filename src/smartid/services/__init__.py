"""SmartID domain services."""

from smartid.services.absence_service import AbsenceService, SweepResult
from smartid.services.attendance_service import CheckInService
from smartid.services.leave_service import LeaveDecision, LeaveService, SubmittedLeave
from smartid.services.quota_service import QuotaBalance, QuotaService
from smartid.services.state_machine import (
    InvalidTransitionError,
    LeaveAction,
    LeaveStateMachine,
    LeaveStatus,
)
from smartid.services.working_days import WorkingDayPolicy

__all__ = [
    "AbsenceService",
    "CheckInService",
    "InvalidTransitionError",
    "LeaveAction",
    "LeaveDecision",
    "LeaveService",
    "LeaveStateMachine",
    "LeaveStatus",
    "QuotaBalance",
    "QuotaService",
    "SubmittedLeave",
    "SweepResult",
    "WorkingDayPolicy",
]
