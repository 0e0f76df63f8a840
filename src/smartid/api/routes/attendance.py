"""Attendance endpoints: the daily absence sweep, card scans and record listing."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query

from smartid.api.dependencies import DbSession, ServiceToken
from smartid.api.schemas import (
    ApiResponse,
    AttendanceRecordEntry,
    CardScanRequest,
    CardScanResponse,
    ErrorResponse,
    MarkAbsentRequest,
    MarkAbsentResponse,
    MarkAbsentStats,
)
from smartid.services.absence_service import AbsenceService
from smartid.services.attendance_service import CheckInService, list_attendance_records
from smartid.services.user_lookup import parse_uuid

router = APIRouter(prefix="/attendance", tags=["attendance"], dependencies=[ServiceToken])

ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.post(
    "/mark-absent",
    response_model=MarkAbsentResponse,
    responses=ERRORS,
)
async def mark_absent(
    db: DbSession,
    payload: MarkAbsentRequest | None = None,
) -> MarkAbsentResponse:
    """Mark assigned users without a record for the date as absent.

    Intended to be called by a scheduler after work hours. With ``dryRun``
    the same users are reported but nothing is written.
    """
    payload = payload or MarkAbsentRequest()
    result = await AbsenceService(db).mark_absences(
        target_date=payload.target_date,
        institution_id=payload.institution_id,
        dry_run=payload.dry_run,
    )
    await db.commit()

    verb = "would be marked" if result.dry_run else "marked"
    return MarkAbsentResponse(
        message=f"{result.marked_absent} user(s) {verb} absent for {result.date.isoformat()}",
        stats=MarkAbsentStats(**result.to_stats()),
        results=[outcome.to_dict() for outcome in result.results],
    )


@router.post(
    "/rfid-checkin",
    response_model=CardScanResponse,
    responses=ERRORS,
)
async def rfid_checkin(
    db: DbSession,
    payload: CardScanRequest,
) -> CardScanResponse:
    """Check a card holder in, or out on the second scan of the day."""
    scan = await CheckInService(db).record_card_scan(
        payload.rfid_uid,
        device_id=payload.device_id,
        location=payload.location,
        verification_method=payload.verification_method,
    )
    await db.commit()
    return CardScanResponse(
        attendance_id=scan.attendance_id,
        user_id=scan.user_id,
        user_name=scan.user_name,
        employee_id=scan.employee_id,
        department=scan.department,
        check_in_time=scan.check_in_time,
        check_out_time=scan.check_out_time,
        status=scan.status,
        message=scan.message,
    )


@router.get(
    "/records",
    response_model=ApiResponse[list[AttendanceRecordEntry]],
    responses=ERRORS,
)
async def list_records(
    db: DbSession,
    institution_id: Annotated[str, Query(alias="institutionId")],
    user_id: Annotated[str | None, Query(alias="userId")] = None,
    on_date: Annotated[date | None, Query(alias="date")] = None,
    start_date: Annotated[date | None, Query(alias="startDate")] = None,
    end_date: Annotated[date | None, Query(alias="endDate")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> ApiResponse[list[AttendanceRecordEntry]]:
    """Records written by card scans and the absence sweep."""
    rows = await list_attendance_records(
        db,
        parse_uuid(institution_id, "institutionId"),
        user_id=parse_uuid(user_id, "userId") if user_id else None,
        on_date=on_date,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return ApiResponse(
        data=[
            AttendanceRecordEntry(
                id=record.id,
                user_id=user.id,
                user_name=user.full_name,
                employee_id=user.employee_id,
                role=user.primary_role,
                date=record.date,
                check_in_time=record.check_in_time,
                check_out_time=record.check_out_time,
                status=record.status,
                verification_method=record.verification_method,
                device_id=record.device_id,
                location=record.location,
                work_group_id=record.work_group_id,
                notes=record.notes,
            )
            for record, user in rows
        ]
    )
