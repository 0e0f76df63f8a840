"""Institution (tenant), user and holiday calendar models."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smartid.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from smartid.models.attendance import SmartCard

APPROVER_ROLES = frozenset({"superadmin", "institution_admin", "admin", "hr_manager", "manager"})


class Institution(Base, TimestampMixin):
    """A tenant owning its users, leave types and work groups."""

    __tablename__ = "institutions"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    timezone: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    users: Mapped[list[User]] = relationship(back_populates="institution")


class User(Base, TimestampMixin):
    """An institution member. Never hard-deleted; ``status`` carries lifecycle."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    institution_id: Mapped[UUID] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    auth_user_id: Mapped[UUID | None] = mapped_column(nullable=True, unique=True)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    primary_role: Mapped[str] = mapped_column(String, nullable=False, default="staff")
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    smart_card_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'suspended')",
            name="users_status_check",
        ),
    )

    institution: Mapped[Institution] = relationship(back_populates="users")
    smart_cards: Mapped[list[SmartCard]] = relationship(back_populates="user")

    @property
    def can_approve(self) -> bool:
        """Whether the user's role allows signing off leave."""
        return self.primary_role in APPROVER_ROLES


class InstitutionHoliday(Base, TimestampMixin):
    """A dated holiday, optionally spanning several days and limited to some work groups."""

    __tablename__ = "institution_holidays"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    institution_id: Mapped[UUID] = mapped_column(
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    holiday_type: Mapped[str] = mapped_column(String, nullable=False, default="public")
    is_working_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Work group ids as strings; empty means every group.
    affected_work_groups: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint(
            "end_date IS NULL OR end_date >= holiday_date",
            name="institution_holidays_dates_check",
        ),
    )

    @property
    def last_date(self) -> date:
        return self.end_date or self.holiday_date

    def applies_to(self, work_group_id: UUID | None) -> bool:
        """Check whether the holiday covers a given work group."""
        if not self.affected_work_groups:
            return True
        if work_group_id is None:
            return False
        return str(work_group_id) in self.affected_work_groups
