"""ORM models."""

from smartid.models.base import Base, TimestampMixin
from smartid.models.institution import (
    APPROVER_ROLES,
    Institution,
    InstitutionHoliday,
    User,
)
from smartid.models.leave import (
    LeaveApplication,
    LeaveApprovalWorkflow,
    LeaveType,
    UserLeaveQuota,
)
from smartid.models.attendance import (
    ATTENDANCE_STATUSES,
    AttendanceRecord,
    SmartCard,
    UserWorkGroupAssignment,
    WorkGroup,
)

__all__ = [
    "APPROVER_ROLES",
    "ATTENDANCE_STATUSES",
    "AttendanceRecord",
    "Base",
    "Institution",
    "InstitutionHoliday",
    "LeaveApplication",
    "LeaveApprovalWorkflow",
    "LeaveType",
    "SmartCard",
    "TimestampMixin",
    "User",
    "UserLeaveQuota",
    "UserWorkGroupAssignment",
    "WorkGroup",
]
