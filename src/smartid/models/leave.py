"""Leave type, quota, application and approval workflow models."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartid.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from smartid.models.institution import User


class LeaveType(Base, TimestampMixin):
    """Institution-scoped leave category."""

    __tablename__ = "leave_types"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    institution_id: Mapped[UUID] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    color: Mapped[str] = mapped_column(String, nullable=False, default="#6366f1")
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    approval_levels: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    has_annual_quota: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_quota_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    allow_carry_forward: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_carry_forward_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_advance_notice_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("institution_id", "code", name="leave_types_institution_code_unique"),
        CheckConstraint("approval_levels >= 1", name="leave_types_approval_levels_check"),
    )


class UserLeaveQuota(Base, TimestampMixin):
    """Per-user, per-leave-type, per-year allotment."""

    __tablename__ = "user_leave_quotas"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_types.id", ondelete="CASCADE"),
        nullable=False,
    )
    quota_year: Mapped[int] = mapped_column(Integer, nullable=False)
    allocated_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remaining_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "leave_type_id", "quota_year",
            name="user_leave_quotas_user_type_year_unique",
        ),
        CheckConstraint(
            "remaining_days = allocated_days - used_days",
            name="user_leave_quotas_remaining_check",
        ),
    )

    leave_type: Mapped[LeaveType] = relationship()


class LeaveApplication(Base, TimestampMixin):
    """A request for time off."""

    __tablename__ = "leave_applications"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    institution_id: Mapped[UUID] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_types.id", ondelete="RESTRICT"),
        nullable=False,
    )
    application_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approval_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    supporting_documents_urls: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    applied_date: Mapped[date] = mapped_column(Date, nullable=False)
    approved_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(String, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="leave_applications_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="leave_applications_dates_check"),
    )

    user: Mapped[User] = relationship()
    leave_type: Mapped[LeaveType] = relationship()
    workflow: Mapped[list[LeaveApprovalWorkflow]] = relationship(
        back_populates="application",
        order_by="LeaveApprovalWorkflow.approval_level",
    )


class LeaveApprovalWorkflow(Base, TimestampMixin):
    """One sign-off stage of a leave application."""

    __tablename__ = "leave_approval_workflow"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    leave_application_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    approval_level: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approver_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    decision_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    comments: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "leave_application_id", "approval_level",
            name="leave_approval_workflow_level_unique",
        ),
    )

    application: Mapped[LeaveApplication] = relationship(back_populates="workflow")
