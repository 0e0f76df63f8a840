"""Working-day policy shared by leave approval and the absence sweep.

A working day is a date whose ISO weekday (Monday = 1 ... Sunday = 7) is in
the schedule and which is not a non-working holiday. Without a work group
the schedule is Monday to Friday.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from smartid.models import InstitutionHoliday, UserWorkGroupAssignment, WorkGroup

DEFAULT_WORKING_DAYS: tuple[int, ...] = (1, 2, 3, 4, 5)


@dataclass(frozen=True)
class WorkingDayPolicy:
    """Which calendar days count as working days."""

    working_days: frozenset[int] = frozenset(DEFAULT_WORKING_DAYS)
    holidays: frozenset[date] = field(default_factory=frozenset)

    @classmethod
    def default(cls) -> WorkingDayPolicy:
        """Monday to Friday, no holidays."""
        return cls()

    @classmethod
    def build(
        cls,
        working_days: Iterable[int] | None = None,
        holidays: Iterable[date] = (),
    ) -> WorkingDayPolicy:
        if working_days is None:
            working_days = DEFAULT_WORKING_DAYS
        days = frozenset(int(d) for d in working_days)
        bad = [d for d in days if d < 1 or d > 7]
        if bad:
            raise ValueError(f"Invalid ISO weekday(s): {sorted(bad)}")
        return cls(working_days=days, holidays=frozenset(holidays))

    def is_working_day(self, day: date) -> bool:
        return day.isoweekday() in self.working_days and day not in self.holidays

    def count_working_days(self, start: date, end: date) -> int:
        """Count working days in ``[start, end]`` inclusive."""
        if end < start:
            return 0
        count = 0
        current = start
        while current <= end:
            if self.is_working_day(current):
                count += 1
            current += timedelta(days=1)
        return count


def expand_holidays(
    holidays: Iterable[InstitutionHoliday],
    start: date,
    end: date,
    work_group_id: UUID | None = None,
) -> set[date]:
    """Expand holiday rows into the non-working dates inside ``[start, end]``.

    Recurring holidays repeat on the same month/day every year.
    """
    dates: set[date] = set()
    for holiday in holidays:
        if holiday.is_working_day or not holiday.applies_to(work_group_id):
            continue
        span = (holiday.last_date - holiday.holiday_date).days
        if holiday.is_recurring:
            years = range(start.year - 1, end.year + 1)
        else:
            years = [holiday.holiday_date.year]
        for year in years:
            try:
                first = holiday.holiday_date.replace(year=year)
            except ValueError:
                # 29 February in a non-leap year
                continue
            for offset in range(span + 1):
                day = first + timedelta(days=offset)
                if start <= day <= end:
                    dates.add(day)
    return dates


async def load_holidays(
    session: AsyncSession,
    institution_id: UUID,
    start: date,
    end: date,
) -> list[InstitutionHoliday]:
    """Fetch holiday rows that may fall inside ``[start, end]``."""
    result = await session.execute(
        select(InstitutionHoliday).where(
            InstitutionHoliday.institution_id == institution_id,
            InstitutionHoliday.is_working_day.is_(False),
            or_(
                InstitutionHoliday.is_recurring.is_(True),
                and_(
                    InstitutionHoliday.holiday_date <= end,
                    func.coalesce(InstitutionHoliday.end_date, InstitutionHoliday.holiday_date) >= start,
                ),
            ),
        )
    )
    return list(result.scalars().all())


async def find_user_work_group(session: AsyncSession, user_id: UUID) -> WorkGroup | None:
    """Return the user's active work group, if assigned to one."""
    result = await session.execute(
        select(WorkGroup)
        .join(UserWorkGroupAssignment, UserWorkGroupAssignment.work_group_id == WorkGroup.id)
        .where(
            UserWorkGroupAssignment.user_id == user_id,
            UserWorkGroupAssignment.is_active.is_(True),
            WorkGroup.is_active.is_(True),
        )
        .order_by(UserWorkGroupAssignment.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def load_working_day_policy(
    session: AsyncSession,
    institution_id: UUID,
    user_id: UUID,
    start: date,
    end: date,
) -> WorkingDayPolicy:
    """Build the policy for one user over a date range."""
    work_group = await find_user_work_group(session, user_id)
    holidays = await load_holidays(session, institution_id, start, end)
    work_group_id = work_group.id if work_group else None
    return WorkingDayPolicy.build(
        working_days=work_group.working_days if work_group else None,
        holidays=expand_holidays(holidays, start, end, work_group_id),
    )
