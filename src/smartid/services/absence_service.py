"""Absence sweep - marks users with no attendance record as absent.

Meant to be triggered once a day, after work hours, by an external scheduler
(HTTP endpoint or ``python -m smartid.cli mark-absent``). Re-running it for
the same date is safe: users who already have a record are never touched.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from datetime import date, datetime, timezone
from typing import Any, Protocol
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from smartid.config import get_settings
from smartid.models import (
    AttendanceRecord,
    Institution,
    InstitutionHoliday,
    LeaveApplication,
    User,
    UserWorkGroupAssignment,
    WorkGroup,
)
from smartid.services.leave_service import approved_leave_on
from smartid.services.working_days import WorkingDayPolicy, expand_holidays, load_holidays

logger = logging.getLogger(__name__)

SYSTEM_VERIFICATION_METHOD = "system_auto"


@dataclass(frozen=True)
class AbsenceOutcome:
    """What the sweep did (or would do) for one user in one work group."""

    user_id: UUID
    employee_id: str
    full_name: str
    email: str | None
    work_group: str
    institution: str
    action: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": {
                "id": str(self.user_id),
                "employee_id": self.employee_id,
                "full_name": self.full_name,
                "email": self.email,
            },
            "work_group": self.work_group,
            "institution": self.institution,
            "action": self.action,
            "reason": self.reason,
        }


@dataclass
class SweepResult:
    """Totals and per-user outcomes of one sweep."""

    date: date
    dry_run: bool
    processed: int = 0
    marked_absent: int = 0
    results: list[AbsenceOutcome] = field(default_factory=list)

    def to_stats(self) -> dict[str, Any]:
        return {
            "processed_users": self.processed,
            "marked_absent": self.marked_absent,
            "date": self.date.isoformat(),
            "dry_run": self.dry_run,
        }


class AbsenceWriter(Protocol):
    """Persists (or pretends to persist) an absent record."""

    action: str

    async def write(self, session: AsyncSession, record: AttendanceRecord) -> None: ...


class CommitAbsenceWriter:
    """Inserts each record in its own savepoint so one failure stays local."""

    action = "marked_absent"

    async def write(self, session: AsyncSession, record: AttendanceRecord) -> None:
        async with session.begin_nested():
            session.add(record)


class DryRunAbsenceWriter:
    """Writes nothing; the sweep only reports who would be marked."""

    action = "would_mark_absent"

    async def write(self, session: AsyncSession, record: AttendanceRecord) -> None:
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AbsenceService:
    """Service running the daily absence sweep."""

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        default_timezone: str | None = None,
    ):
        self.session = session
        self.clock = clock
        self.default_timezone = default_timezone or get_settings().default_timezone

    def resolve_timezone(self, name: str | None) -> ZoneInfo:
        """Institution timezone, falling back to the configured default."""
        if name:
            try:
                return ZoneInfo(name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r, using %s", name, self.default_timezone)
        return ZoneInfo(self.default_timezone)

    def today(self, now: datetime | None = None) -> date:
        now = now or self.clock()
        return now.astimezone(ZoneInfo(self.default_timezone)).date()

    async def mark_absences(
        self,
        target_date: date | None = None,
        institution_id: UUID | None = None,
        dry_run: bool = False,
        now: datetime | None = None,
    ) -> SweepResult:
        """Mark every assigned user without a record for ``target_date`` as absent.

        Args:
            target_date: Day to sweep (defaults to today in the default timezone)
            institution_id: Restrict the sweep to one institution
            dry_run: Run the same reads but write nothing
            now: Wall-clock time used for the cutoff comparison

        Returns:
            SweepResult with counters and per-user outcomes
        """
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        target_date = target_date or self.today(now)
        writer: AbsenceWriter = DryRunAbsenceWriter() if dry_run else CommitAbsenceWriter()
        result = SweepResult(date=target_date, dry_run=dry_run)

        logger.info(
            "Starting absence marking for %s (ISO weekday %s)%s",
            target_date,
            target_date.isoweekday(),
            " [DRY RUN]" if dry_run else "",
        )

        groups = await self._active_work_groups(institution_id)
        logger.info("Found %s active work group(s)", len(groups))
        holidays = await self._holidays_by_institution(
            {wg.institution_id for wg, _ in groups}, target_date
        )
        handled: set[UUID] = set()
        counted: set[UUID] = set()

        for work_group, institution in groups:
            policy = WorkingDayPolicy.build(
                work_group.working_days,
                expand_holidays(
                    holidays.get(institution.id, []), target_date, target_date, work_group.id
                ),
            )
            if not policy.is_working_day(target_date):
                logger.info(
                    "Skipping %s - not a working day (working days: %s)",
                    work_group.name,
                    ",".join(str(d) for d in sorted(policy.working_days)),
                )
                continue

            tz = self.resolve_timezone(institution.timezone)
            cutoff = datetime.combine(target_date, work_group.default_end_time, tzinfo=tz)
            past_cutoff = now > cutoff
            end_label = work_group.default_end_time.strftime("%H:%M")

            members = await self._assigned_users(work_group.id)
            member_ids = [u.id for u in members]
            handled |= await self._recorded_user_ids(member_ids, target_date)
            on_leave = await self._users_on_leave(member_ids, target_date)
            logger.info(
                "Processing %s (%s): %s assigned user(s), cutoff %s",
                work_group.name,
                institution.name,
                len(members),
                cutoff.isoformat(),
            )

            for user in members:
                result.processed += 1
                note = partial(self._outcome, user, work_group, institution)

                if user.id in handled:
                    result.results.append(note("already_recorded", "Attendance already recorded"))
                    continue
                if user.id in counted:
                    result.results.append(note("already_counted", "Already counted in another work group"))
                    continue
                if user.id in on_leave:
                    result.results.append(note("on_leave", "Approved leave covers this date"))
                    continue
                if not (past_cutoff or dry_run):
                    result.results.append(note("before_cutoff", f"Still within work hours (ends {end_label})"))
                    continue

                record = AttendanceRecord(
                    user_id=user.id,
                    institution_id=work_group.institution_id,
                    work_group_id=work_group.id,
                    employee_id=user.employee_id,
                    date=target_date,
                    status="absent",
                    check_in_time=None,
                    check_out_time=None,
                    verification_method=SYSTEM_VERIFICATION_METHOD,
                    notes=f"Automatically marked absent - no check-in by end of work day ({end_label})",
                )
                try:
                    await writer.write(self.session, record)
                except SQLAlchemyError:
                    logger.exception("Failed to mark %s (%s) as absent", user.full_name, user.employee_id)
                    result.results.append(note("failed", "Database insert failed"))
                    continue

                (counted if dry_run else handled).add(user.id)
                result.marked_absent += 1
                result.results.append(note(writer.action, f"No check-in by {end_label}"))

        logger.info(
            "Absence marking completed for %s: processed=%s marked_absent=%s mode=%s",
            target_date,
            result.processed,
            result.marked_absent,
            "DRY RUN" if dry_run else "LIVE",
        )
        return result

    @staticmethod
    def _outcome(
        user: User,
        work_group: WorkGroup,
        institution: Institution,
        action: str,
        reason: str,
    ) -> AbsenceOutcome:
        return AbsenceOutcome(
            user_id=user.id,
            employee_id=user.employee_id,
            full_name=user.full_name,
            email=user.email,
            work_group=work_group.name,
            institution=institution.name,
            action=action,
            reason=reason,
        )

    async def _active_work_groups(
        self,
        institution_id: UUID | None,
    ) -> list[tuple[WorkGroup, Institution]]:
        query = (
            select(WorkGroup, Institution)
            .join(Institution, WorkGroup.institution_id == Institution.id)
            .where(WorkGroup.is_active.is_(True))
        )
        if institution_id is not None:
            query = query.where(WorkGroup.institution_id == institution_id)
        result = await self.session.execute(query.order_by(Institution.name, WorkGroup.name))
        return [(wg, inst) for wg, inst in result.all()]

    async def _holidays_by_institution(
        self,
        institution_ids: set[UUID],
        target_date: date,
    ) -> dict[UUID, list[InstitutionHoliday]]:
        holidays: dict[UUID, list[InstitutionHoliday]] = defaultdict(list)
        for institution_id in institution_ids:
            holidays[institution_id] = await load_holidays(
                self.session, institution_id, target_date, target_date
            )
        return holidays

    async def _assigned_users(self, work_group_id: UUID) -> list[User]:
        result = await self.session.execute(
            select(User)
            .join(UserWorkGroupAssignment, UserWorkGroupAssignment.user_id == User.id)
            .where(
                UserWorkGroupAssignment.work_group_id == work_group_id,
                UserWorkGroupAssignment.is_active.is_(True),
                User.status == "active",
            )
            .order_by(User.full_name)
        )
        return list(result.scalars().all())

    async def _recorded_user_ids(self, user_ids: list[UUID], target_date: date) -> set[UUID]:
        if not user_ids:
            return set()
        result = await self.session.execute(
            select(AttendanceRecord.user_id).where(
                AttendanceRecord.user_id.in_(user_ids),
                AttendanceRecord.date == target_date,
            )
        )
        return set(result.scalars().all())

    async def _users_on_leave(self, user_ids: list[UUID], target_date: date) -> set[UUID]:
        if not user_ids:
            return set()
        result = await self.session.execute(
            select(LeaveApplication.user_id).where(
                LeaveApplication.user_id.in_(user_ids),
                approved_leave_on(target_date),
            )
        )
        return set(result.scalars().all())
