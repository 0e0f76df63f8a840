"""Leave quota store.

One row per (user, leave type, year). Rows are created lazily from the leave
type's default allocation and always satisfy
``remaining_days == allocated_days - used_days``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from smartid.config import get_settings
from smartid.errors import UpstreamError, ValidationError
from smartid.models import LeaveType, User, UserLeaveQuota

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotaBalance:
    """Totals across every leave type for one user and year."""

    total_leave: int
    used_leave: int
    remaining_leave: int
    year: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total_leave": self.total_leave,
            "used_leave": self.used_leave,
            "remaining_leave": self.remaining_leave,
            "year": self.year,
        }


class QuotaService:
    """Service for reading, creating and debiting leave quotas."""

    def __init__(self, session: AsyncSession, default_quota_days: int | None = None):
        self.session = session
        if default_quota_days is None:
            default_quota_days = get_settings().default_quota_days
        self.default_quota_days = default_quota_days

    def allocation_for(self, leave_type: LeaveType) -> int:
        """Days allocated to a fresh quota row of this leave type."""
        if leave_type.default_quota_days is None:
            return self.default_quota_days
        return leave_type.default_quota_days

    async def find_quota(
        self,
        user_id: UUID,
        leave_type_id: UUID,
        year: int,
    ) -> UserLeaveQuota | None:
        result = await self.session.execute(
            select(UserLeaveQuota).where(
                UserLeaveQuota.user_id == user_id,
                UserLeaveQuota.leave_type_id == leave_type_id,
                UserLeaveQuota.quota_year == year,
            )
        )
        return result.scalar_one_or_none()

    async def get_or_create_quota(
        self,
        user_id: UUID,
        leave_type: LeaveType,
        year: int,
    ) -> UserLeaveQuota:
        """Return the quota row, creating it from the leave type default if absent.

        The insert runs in a savepoint so that losing a creation race to a
        concurrent request falls back to re-reading the winner's row.
        """
        quota = await self.find_quota(user_id, leave_type.id, year)
        if quota is not None:
            return quota

        allocated = self.allocation_for(leave_type)
        quota = UserLeaveQuota(
            user_id=user_id,
            leave_type_id=leave_type.id,
            quota_year=year,
            allocated_days=allocated,
            used_days=0,
            remaining_days=allocated,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(quota)
        except IntegrityError:
            logger.info(
                "Quota for user %s / leave type %s / %s created concurrently, re-reading",
                user_id,
                leave_type.id,
                year,
            )
            quota = await self.find_quota(user_id, leave_type.id, year)
            if quota is None:
                raise UpstreamError("Failed to create leave quota") from None
        else:
            logger.info(
                "Created %s-day %s quota for user %s (%s)",
                allocated,
                leave_type.name,
                user_id,
                year,
            )
        return quota

    async def debit(
        self,
        user_id: UUID,
        leave_type: LeaveType,
        year: int,
        days: int,
    ) -> UserLeaveQuota:
        """Add ``days`` to the used total in a single UPDATE statement."""
        if days < 0:
            raise ValidationError("Cannot debit a negative number of days")

        quota = await self.get_or_create_quota(user_id, leave_type, year)
        await self.session.execute(
            update(UserLeaveQuota)
            .where(UserLeaveQuota.id == quota.id)
            .values(
                used_days=UserLeaveQuota.used_days + days,
                remaining_days=UserLeaveQuota.allocated_days - (UserLeaveQuota.used_days + days),
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(quota)
        logger.info(
            "Debited %s day(s) of %s for user %s: %s used, %s remaining",
            days,
            leave_type.name,
            user_id,
            quota.used_days,
            quota.remaining_days,
        )
        return quota

    async def ensure_quotas_for_user(
        self,
        user: User,
        year: int,
    ) -> list[tuple[UserLeaveQuota, LeaveType]]:
        """Quota rows for every active leave type of the user's institution."""
        result = await self.session.execute(
            select(LeaveType)
            .where(
                LeaveType.institution_id == user.institution_id,
                LeaveType.is_active.is_(True),
            )
            .order_by(LeaveType.display_order, LeaveType.name)
        )
        pairs = []
        for leave_type in result.scalars().all():
            quota = await self.get_or_create_quota(user.id, leave_type, year)
            pairs.append((quota, leave_type))
        return pairs

    async def balance_for_user(self, user: User, year: int) -> QuotaBalance:
        pairs = await self.ensure_quotas_for_user(user, year)
        allocated = sum(q.allocated_days for q, _ in pairs)
        used = sum(q.used_days for q, _ in pairs)
        return QuotaBalance(
            total_leave=allocated,
            used_leave=used,
            remaining_leave=allocated - used,
            year=year,
        )
