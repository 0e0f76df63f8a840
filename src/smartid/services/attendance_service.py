"""Card (RFID/NFC) check-in and check-out."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from smartid.config import get_settings
from smartid.errors import NotFoundError, StateError, ValidationError
from smartid.models import AttendanceRecord, Institution, SmartCard, User, WorkGroup
from smartid.services.working_days import find_user_work_group

logger = logging.getLogger(__name__)

DEFAULT_VERIFICATION_METHOD = "RFID_CARD"


@dataclass(frozen=True)
class CheckInResult:
    """Outcome of a card scan."""

    attendance_id: UUID
    user_id: UUID
    user_name: str
    employee_id: str
    department: str | None
    check_in_time: datetime | None
    check_out_time: datetime | None
    status: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "attendance_id": str(self.attendance_id),
            "user_id": str(self.user_id),
            "user_name": self.user_name,
            "employee_id": self.employee_id,
            "department": self.department,
            "check_in_time": self.check_in_time.isoformat() if self.check_in_time else None,
            "check_out_time": self.check_out_time.isoformat() if self.check_out_time else None,
            "status": self.status,
            "message": self.message,
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def list_attendance_records(
    session: AsyncSession,
    institution_id: UUID,
    user_id: UUID | None = None,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 100,
) -> list[tuple[AttendanceRecord, User]]:
    """Attendance records of an institution's users, newest day first.

    A single ``on_date`` wins over a range; a range needs both ends.
    """
    query = (
        select(AttendanceRecord, User)
        .join(User, AttendanceRecord.user_id == User.id)
        .where(User.institution_id == institution_id)
    )
    if user_id is not None:
        query = query.where(AttendanceRecord.user_id == user_id)

    if on_date is not None:
        query = query.where(AttendanceRecord.date == on_date)
    elif start_date is not None or end_date is not None:
        if start_date is None or end_date is None:
            raise ValidationError("startDate and endDate must be given together")
        if end_date < start_date:
            raise ValidationError("endDate must be on or after startDate")
        query = query.where(AttendanceRecord.date.between(start_date, end_date))

    result = await session.execute(
        query.order_by(
            AttendanceRecord.date.desc(),
            AttendanceRecord.check_in_time.desc().nulls_last(),
            User.full_name,
        ).limit(limit)
    )
    return [(record, user) for record, user in result.all()]


class CheckInService:
    """Records attendance from card scans.

    The first scan of the day checks the user in (``present`` or ``late``),
    the second checks them out (``early_leave`` before the work group's end
    time). Further scans are rejected.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        default_timezone: str | None = None,
        late_grace_minutes: int | None = None,
    ):
        settings = get_settings()
        self.session = session
        self.clock = clock
        self.default_timezone = default_timezone or settings.default_timezone
        if late_grace_minutes is None:
            late_grace_minutes = settings.late_grace_minutes
        self.late_grace_minutes = late_grace_minutes

    async def find_card_holder(self, rfid_uid: str) -> User:
        """Resolve a card UID to its active holder."""
        result = await self.session.execute(
            select(User)
            .join(SmartCard, SmartCard.user_id == User.id)
            .where(
                SmartCard.nfc_id == rfid_uid,
                SmartCard.status == "active",
                User.status == "active",
            )
        )
        user = result.scalar_one_or_none()
        if user is not None:
            return user

        # Older enrolments stored the UID on the user row only
        result = await self.session.execute(
            select(User)
            .where(User.smart_card_id == rfid_uid, User.status == "active")
            .limit(1)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("RFID card not found or not enrolled. Please enroll the card first.")
        return user

    def _timezone(self, institution: Institution | None) -> ZoneInfo:
        name = institution.timezone if institution else None
        if name:
            try:
                return ZoneInfo(name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r, using %s", name, self.default_timezone)
        return ZoneInfo(self.default_timezone)

    def check_in_status(self, work_group: WorkGroup | None, local_now: datetime) -> str:
        """``late`` when past the group's start time plus the grace period."""
        if work_group is None:
            return "present"
        grace = work_group.late_threshold_minutes
        if grace is None:
            grace = self.late_grace_minutes
        start = datetime.combine(local_now.date(), work_group.default_start_time, tzinfo=local_now.tzinfo)
        return "late" if local_now > start + timedelta(minutes=grace) else "present"

    async def record_card_scan(
        self,
        rfid_uid: str,
        device_id: str | None = None,
        location: str | None = None,
        verification_method: str | None = None,
        now: datetime | None = None,
    ) -> CheckInResult:
        if not rfid_uid or not rfid_uid.strip():
            raise ValidationError("Missing required field: rfid_uid")
        method = verification_method or DEFAULT_VERIFICATION_METHOD

        user = await self.find_card_holder(rfid_uid.strip())
        institution = await self.session.get(Institution, user.institution_id)
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local_now = now.astimezone(self._timezone(institution))
        today = local_now.date()
        work_group = await find_user_work_group(self.session, user.id)

        result = await self.session.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.user_id == user.id,
                AttendanceRecord.date == today,
            )
        )
        record = result.scalar_one_or_none()

        if record is None:
            record = AttendanceRecord(
                user_id=user.id,
                institution_id=user.institution_id,
                work_group_id=work_group.id if work_group else None,
                employee_id=user.employee_id,
                date=today,
                check_in_time=now,
                status=self.check_in_status(work_group, local_now),
                verification_method=method,
                device_id=device_id,
                location=location,
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(record)
            except IntegrityError:
                raise StateError("Attendance for today was recorded concurrently, scan again") from None
            message = f"Check-in recorded for {user.full_name}"
        elif record.check_in_time is None:
            raise StateError(
                f"{user.full_name} is already marked {record.status} for {today}",
                from_status=record.status,
                action="check_in",
            )
        elif record.check_out_time is None:
            record.check_out_time = now
            record.verification_method = method
            record.device_id = device_id
            record.location = location
            if work_group is not None and local_now.time() < work_group.default_end_time:
                record.status = "early_leave"
            await self.session.flush()
            message = f"Check-out recorded for {user.full_name}"
        else:
            raise StateError(
                f"{user.full_name} has already checked out for {today}",
                from_status=record.status,
                action="check_out",
            )

        logger.info(
            "%s via %s on device %s: %s",
            message,
            method,
            device_id or "-",
            record.status,
        )
        return CheckInResult(
            attendance_id=record.id,
            user_id=user.id,
            user_name=user.full_name,
            employee_id=user.employee_id,
            department=user.department,
            check_in_time=record.check_in_time,
            check_out_time=record.check_out_time,
            status=record.status,
            message=message,
        )
