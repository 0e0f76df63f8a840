"""Work group, assignment, smart card and attendance record models."""

from __future__ import annotations

import datetime as dt
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
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartid.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from smartid.models.institution import Institution, User

ATTENDANCE_STATUSES = ("present", "late", "absent", "early_leave")


class WorkGroup(Base, TimestampMixin):
    """Institution-scoped working schedule."""

    __tablename__ = "work_groups"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    institution_id: Mapped[UUID] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    default_start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    default_end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    break_start_time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    break_end_time: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    # ISO weekdays, Monday = 1 ... Sunday = 7
    working_days: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=lambda: [1, 2, 3, 4, 5])
    late_threshold_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    institution: Mapped[Institution] = relationship()
    assignments: Mapped[list[UserWorkGroupAssignment]] = relationship(back_populates="work_group")


class UserWorkGroupAssignment(Base, TimestampMixin):
    """Membership of a user in a work group."""

    __tablename__ = "user_work_group_assignments"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_group_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("user_id", "work_group_id", name="user_work_group_assignments_unique"),
    )

    user: Mapped[User] = relationship()
    work_group: Mapped[WorkGroup] = relationship(back_populates="assignments")


class SmartCard(Base, TimestampMixin):
    """An RFID/NFC card enrolled to a user."""

    __tablename__ = "smart_cards"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    nfc_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    user: Mapped[User] = relationship(back_populates="smart_cards")


class AttendanceRecord(Base, TimestampMixin):
    """Daily attendance for one user. At most one row per (user, date)."""

    __tablename__ = "attendance_records"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    institution_id: Mapped[UUID] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_group_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("work_groups.id", ondelete="SET NULL"),
        nullable=True,
    )
    employee_id: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    check_in_time: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_time: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    verification_method: Mapped[str | None] = mapped_column(String, nullable=True)
    device_id: Mapped[str | None] = mapped_column(String, nullable=True)
    location: Mapped[str | None] = mapped_column(String, nullable=True)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="attendance_records_user_date_unique"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in ATTENDANCE_STATUSES) + ")",
            name="attendance_records_status_check",
        ),
    )
