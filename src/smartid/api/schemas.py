"""Pydantic schemas for API request/response models."""

import datetime as dt
from datetime import date, datetime, time
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Model exchanged with clients in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope shared by all endpoints."""

    success: bool = True
    data: T
    message: str | None = None


class ErrorResponse(BaseModel):
    """Error envelope."""

    success: bool = False
    error: str
    code: str


# ============================================================================
# Leave applications
# ============================================================================


class LeaveRequestCreate(CamelModel):
    """Body of a leave request."""

    user_id: str
    leave_type: str
    start_date: date
    end_date: date
    reason: str
    supporting_documents_urls: list[str] | None = None
    applied_date: date | None = None


class LeaveRequestResponse(CamelModel):
    application_id: UUID
    application_number: str
    status: str
    total_days: int


class LeaveDecisionCreate(CamelModel):
    """Body of an approve/reject decision."""

    application_id: str
    action: str
    approver_id: str
    comments: str | None = None


class LeaveDecisionResponse(CamelModel):
    application_id: UUID
    status: str
    working_days: int | None = None
    approval_level: int
    final: bool


class LeaveBalanceResponse(BaseModel):
    """Totals across all leave types; snake_case as consumed by the mobile app."""

    total_leave: int
    used_leave: int
    remaining_leave: int
    year: int


class QuotaEntry(CamelModel):
    leave_type_id: UUID
    leave_type_name: str
    leave_type_code: str
    leave_type_color: str
    allocated_days: int
    used_days: int
    remaining_days: int
    quota_year: int
    has_annual_quota: bool


class UserQuotaResponse(CamelModel):
    user_id: UUID
    user_name: str
    employee_id: str
    quota_year: int
    quotas: list[QuotaEntry]


class LeaveHistoryEntry(CamelModel):
    id: UUID
    application_number: str
    leave_type: str
    leave_type_code: str
    start_date: date
    end_date: date
    total_days: int
    reason: str
    status: str
    approval_level: int
    applied_date: date
    approved_date: datetime | None = None
    rejected_date: datetime | None = None
    approval_comments: str | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None


class LeaveApplicationSummary(LeaveHistoryEntry):
    """History entry with the applicant, for approvers."""

    user_id: UUID
    user_name: str
    employee_id: str


class OnLeaveEntry(CamelModel):
    """A user away on approved leave on the requested date."""

    user_id: UUID
    user_name: str
    employee_id: str
    role: str
    application_id: UUID
    application_number: str
    leave_type_name: str
    leave_type_color: str
    start_date: date
    end_date: date
    total_days: int
    days_remaining: int


# ============================================================================
# Attendance
# ============================================================================


class MarkAbsentRequest(CamelModel):
    target_date: date | None = Field(default=None, alias="date")
    institution_id: UUID | None = None
    dry_run: bool = False


class MarkAbsentStats(BaseModel):
    processed_users: int
    marked_absent: int
    date: str
    dry_run: bool


class MarkAbsentResponse(BaseModel):
    """Sweep summary; kept flat for the scheduler that calls it."""

    success: bool = True
    message: str
    stats: MarkAbsentStats
    results: list[dict[str, Any]]


class AttendanceRecordEntry(CamelModel):
    id: UUID
    user_id: UUID
    user_name: str
    employee_id: str
    role: str
    date: dt.date
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    status: str
    verification_method: str | None = None
    device_id: str | None = None
    location: str | None = None
    work_group_id: UUID | None = None
    notes: str | None = None


class CardScanRequest(BaseModel):
    """Card reader payload; readers send snake_case."""

    rfid_uid: str
    device_id: str | None = None
    location: str | None = None
    verification_method: str | None = None


class CardScanResponse(BaseModel):
    success: bool = True
    attendance_id: UUID
    user_id: UUID
    user_name: str
    employee_id: str
    department: str | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    status: str
    message: str


# ============================================================================
# Institution setup
# ============================================================================


class LeaveTypeCreate(CamelModel):
    institution_id: UUID
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    description: str | None = None
    color: str = "#6366f1"
    is_paid: bool = True
    requires_approval: bool = True
    approval_levels: int = Field(default=1, ge=1)
    has_annual_quota: bool = True
    default_quota_days: int | None = Field(default=None, ge=0)
    allow_carry_forward: bool = False
    max_carry_forward_days: int | None = Field(default=None, ge=0)
    min_advance_notice_days: int = Field(default=1, ge=0)
    display_order: int = 0
    created_by: UUID | None = None


class LeaveTypeResponse(CamelModel):
    id: UUID
    institution_id: UUID
    name: str
    code: str
    description: str | None = None
    color: str
    is_paid: bool
    requires_approval: bool
    approval_levels: int
    has_annual_quota: bool
    default_quota_days: int | None = None
    allow_carry_forward: bool
    max_carry_forward_days: int | None = None
    min_advance_notice_days: int
    is_active: bool
    display_order: int


class HolidayCreate(CamelModel):
    institution_id: UUID
    name: str = Field(min_length=1)
    description: str | None = None
    holiday_date: date
    end_date: date | None = None
    holiday_type: str = "public"
    is_working_day: bool = False
    is_recurring: bool = False
    affected_work_groups: list[UUID] = Field(default_factory=list)


class HolidayResponse(CamelModel):
    id: UUID
    institution_id: UUID
    name: str
    description: str | None = None
    holiday_date: date
    end_date: date | None = None
    holiday_type: str
    is_working_day: bool
    is_recurring: bool
    affected_work_groups: list[str]


class WorkGroupCreate(CamelModel):
    institution_id: UUID
    name: str = Field(min_length=1)
    description: str | None = None
    default_start_time: time
    default_end_time: time
    break_start_time: time | None = None
    break_end_time: time | None = None
    working_days: list[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    late_threshold_minutes: int | None = Field(default=None, ge=0)

    @field_validator("working_days")
    @classmethod
    def check_weekdays(cls, value: list[int]) -> list[int]:
        if any(d < 1 or d > 7 for d in value):
            raise ValueError("working days must be ISO weekdays 1 (Mon) to 7 (Sun)")
        return sorted(set(value))


class WorkGroupResponse(CamelModel):
    id: UUID
    institution_id: UUID
    name: str
    description: str | None = None
    default_start_time: time
    default_end_time: time
    break_start_time: time | None = None
    break_end_time: time | None = None
    working_days: list[int]
    late_threshold_minutes: int | None = None
    is_active: bool


class AssignUsersRequest(CamelModel):
    user_ids: list[UUID] = Field(min_length=1)


class AssignUsersResponse(CamelModel):
    work_group_id: UUID
    assigned: int
    reactivated: int
    already_assigned: int
