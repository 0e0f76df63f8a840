"""Tests for the daily absence sweep."""

from datetime import date, datetime, time, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from smartid.models import AttendanceRecord, InstitutionHoliday, LeaveApplication, UserWorkGroupAssignment, WorkGroup
from smartid.services import absence_service
from smartid.services.absence_service import SYSTEM_VERIFICATION_METHOD, AbsenceService

from tests.factories import assign, create_user

# Monday; the work group ends at 17:00 Asia/Kuala_Lumpur = 09:00 UTC
TARGET = date(2024, 1, 15)
AFTER_HOURS = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
DURING_HOURS = datetime(2024, 1, 15, 6, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def members(session, work_group, staff, colleague):
    await assign(session, staff, work_group)
    await assign(session, colleague, work_group)
    return staff, colleague


async def records_for(session, target=TARGET):
    result = await session.execute(select(AttendanceRecord).where(AttendanceRecord.date == target))
    return list(result.scalars().all())


def actions(result):
    return {outcome.employee_id: outcome.action for outcome in result.results}


class TestMarkAbsences:
    """Live sweeps."""

    async def test_marks_users_without_record(self, session, members):
        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert result.processed == 2
        assert result.marked_absent == 2
        assert actions(result) == {"EMP001": "marked_absent", "EMP002": "marked_absent"}

        records = await records_for(session)
        assert len(records) == 2
        for record in records:
            assert record.status == "absent"
            assert record.check_in_time is None
            assert record.verification_method == SYSTEM_VERIFICATION_METHOD
            assert "17:00" in record.notes

    async def test_existing_records_untouched(self, session, institution, members, work_group):
        staff, _ = members
        present = AttendanceRecord(
            user_id=staff.id,
            institution_id=institution.id,
            work_group_id=work_group.id,
            employee_id=staff.employee_id,
            date=TARGET,
            check_in_time=datetime(2024, 1, 15, 0, 5, tzinfo=timezone.utc),
            status="present",
            verification_method="RFID_CARD",
        )
        session.add(present)
        await session.flush()

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert actions(result) == {"EMP001": "already_recorded", "EMP002": "marked_absent"}
        await session.refresh(present)
        assert present.status == "present"
        assert present.verification_method == "RFID_CARD"

    async def test_rerun_is_idempotent(self, session, members):
        service = AbsenceService(session)
        await service.mark_absences(TARGET, now=AFTER_HOURS)

        second = await service.mark_absences(TARGET, now=AFTER_HOURS)

        assert second.marked_absent == 0
        assert set(actions(second).values()) == {"already_recorded"}
        assert len(await records_for(session)) == 2

    async def test_before_cutoff_nobody_marked(self, session, members):
        result = await AbsenceService(session).mark_absences(TARGET, now=DURING_HOURS)

        assert result.processed == 2
        assert result.marked_absent == 0
        assert set(actions(result).values()) == {"before_cutoff"}
        assert await records_for(session) == []

    async def test_weekend_skipped(self, session, members):
        result = await AbsenceService(session).mark_absences(
            date(2024, 1, 20), now=datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
        )

        assert result.processed == 0
        assert result.results == []

    async def test_custom_working_days(self, session, members, work_group):
        """A group working Saturdays is swept on Saturday."""
        work_group.working_days = [1, 2, 3, 4, 5, 6]
        await session.flush()

        result = await AbsenceService(session).mark_absences(
            date(2024, 1, 20), now=datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)
        )

        assert result.marked_absent == 2

    async def test_institution_holiday_skipped(self, session, institution, members):
        session.add(InstitutionHoliday(institution_id=institution.id, name="Federal Territory Day", holiday_date=TARGET))
        await session.flush()

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert result.processed == 0
        assert await records_for(session) == []

    async def test_holiday_for_other_group_does_not_skip(self, session, institution, members, work_group):
        session.add(
            InstitutionHoliday(
                institution_id=institution.id,
                name="Sports day (admin only)",
                holiday_date=TARGET,
                affected_work_groups=["00000000-0000-0000-0000-000000000000"],
            )
        )
        await session.flush()

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert result.marked_absent == 2

    async def test_approved_leave_not_marked_absent(self, session, institution, members, annual_leave):
        staff, _ = members
        session.add(
            LeaveApplication(
                institution_id=institution.id,
                user_id=staff.id,
                leave_type_id=annual_leave.id,
                application_number="LA2024-1-TEST",
                start_date=date(2024, 1, 15),
                end_date=date(2024, 1, 16),
                total_days=2,
                reason="Wedding",
                status="approved",
                applied_date=date(2024, 1, 2),
            )
        )
        await session.flush()

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert actions(result) == {"EMP001": "on_leave", "EMP002": "marked_absent"}

    async def test_inactive_members_excluded(self, session, institution, work_group, staff, members):
        result = await session.execute(
            select(UserWorkGroupAssignment).where(UserWorkGroupAssignment.user_id == staff.id)
        )
        result.scalar_one().is_active = False
        leaver = await create_user(session, institution, "EMP777", "Left Already", status="inactive")
        await assign(session, leaver, work_group)

        outcome = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert actions(outcome) == {"EMP002": "marked_absent"}

    async def test_inactive_work_group_skipped(self, session, members, work_group):
        work_group.is_active = False
        await session.flush()

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert result.processed == 0

    async def test_user_in_two_groups_marked_once(self, session, institution, members):
        staff, _ = members
        evening = WorkGroup(
            institution_id=institution.id,
            name="Evening Classes",
            default_start_time=time(14, 0),
            default_end_time=time(16, 0),
        )
        session.add(evening)
        await session.flush()
        await assign(session, staff, evening)

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert result.marked_absent == 2
        assert len(await records_for(session)) == 2
        staff_actions = sorted(o.action for o in result.results if o.employee_id == "EMP001")
        assert staff_actions == ["already_recorded", "marked_absent"]

    async def test_institution_filter(self, session, other_institution, members):
        result = await AbsenceService(session).mark_absences(
            TARGET, institution_id=other_institution.id, now=AFTER_HOURS
        )

        assert result.processed == 0
        assert await records_for(session) == []

    async def test_failed_insert_does_not_abort_batch(self, session, members, monkeypatch):
        original = absence_service.CommitAbsenceWriter.write

        async def flaky_write(self, db, record):
            if record.employee_id == "EMP001":
                raise SQLAlchemyError("simulated insert failure")
            await original(self, db, record)

        monkeypatch.setattr(absence_service.CommitAbsenceWriter, "write", flaky_write)

        result = await AbsenceService(session).mark_absences(TARGET, now=AFTER_HOURS)

        assert actions(result) == {"EMP001": "failed", "EMP002": "marked_absent"}
        assert result.marked_absent == 1
        assert [r.employee_id for r in await records_for(session)] == ["EMP002"]

    async def test_default_date_is_local_today(self, session, members):
        """23:30 UTC on Sunday is already Monday in Kuala Lumpur."""
        now = datetime(2024, 1, 14, 23, 30, tzinfo=timezone.utc)

        result = await AbsenceService(session, clock=lambda: now).mark_absences(dry_run=True)

        assert result.date == TARGET


class TestDryRun:
    """Dry runs read but never write."""

    async def test_dry_run_writes_nothing(self, session, members):
        result = await AbsenceService(session).mark_absences(TARGET, dry_run=True, now=AFTER_HOURS)

        assert result.dry_run is True
        assert result.marked_absent == 2
        assert set(actions(result).values()) == {"would_mark_absent"}
        count = await session.scalar(select(func.count()).select_from(AttendanceRecord))
        assert count == 0

    async def test_dry_run_ignores_cutoff(self, session, members):
        result = await AbsenceService(session).mark_absences(TARGET, dry_run=True, now=DURING_HOURS)

        assert result.marked_absent == 2

    async def test_user_in_two_groups_counted_once(self, session, institution, members):
        staff, _ = members
        evening = WorkGroup(
            institution_id=institution.id,
            name="Evening Classes",
            default_start_time=time(14, 0),
            default_end_time=time(16, 0),
        )
        session.add(evening)
        await session.flush()
        await assign(session, staff, evening)

        result = await AbsenceService(session).mark_absences(TARGET, dry_run=True, now=AFTER_HOURS)

        assert result.marked_absent == 2
        staff_outcomes = [(o.work_group, o.action, o.reason) for o in result.results if o.employee_id == "EMP001"]
        assert staff_outcomes == [
            ("Evening Classes", "would_mark_absent", "No check-in by 16:00"),
            ("Teaching Staff", "already_counted", "Already counted in another work group"),
        ]

    async def test_result_serialisation(self, session, members):
        result = await AbsenceService(session).mark_absences(TARGET, dry_run=True, now=AFTER_HOURS)

        assert result.to_stats() == {
            "processed_users": 2,
            "marked_absent": 2,
            "date": "2024-01-15",
            "dry_run": True,
        }
        entry = result.results[0].to_dict()
        assert entry["user"]["employee_id"] == "EMP001"
        assert entry["user"]["full_name"] == "Aisyah Rahman"
        assert entry["work_group"] == "Teaching Staff"
        assert entry["institution"] == "Sekolah Kebangsaan Taman Melati"
        assert entry["action"] == "would_mark_absent"
