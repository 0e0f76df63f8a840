"""Leave application endpoints used by the mobile app and the admin UI."""

from datetime import date, datetime, timezone
from typing import Annotated
from uuid import UUID
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Query, status

from smartid.api.dependencies import AppSettings, DbSession
from smartid.api.schemas import (
    ApiResponse,
    ErrorResponse,
    LeaveApplicationSummary,
    LeaveBalanceResponse,
    LeaveDecisionCreate,
    LeaveDecisionResponse,
    LeaveHistoryEntry,
    LeaveRequestCreate,
    LeaveRequestResponse,
    OnLeaveEntry,
    QuotaEntry,
    UserQuotaResponse,
)
from smartid.models import LeaveApplication, LeaveType
from smartid.services.leave_service import LeaveService
from smartid.services.quota_service import QuotaService
from smartid.services.user_lookup import parse_uuid, resolve_user

router = APIRouter(prefix="/leave", tags=["leave"])

UserIdParam = Annotated[str | None, Query(alias="userId")]
EmployeeIdParam = Annotated[str | None, Query(alias="employeeId")]
YearParam = Annotated[int | None, Query(ge=1970, le=9999)]

ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


def current_year() -> int:
    return datetime.now(timezone.utc).year


def history_entry(application: LeaveApplication, leave_type: LeaveType) -> LeaveHistoryEntry:
    return LeaveHistoryEntry(
        id=application.id,
        application_number=application.application_number,
        leave_type=leave_type.name,
        leave_type_code=leave_type.code,
        start_date=application.start_date,
        end_date=application.end_date,
        total_days=application.total_days,
        reason=application.reason,
        status=application.status,
        approval_level=application.approval_level,
        applied_date=application.applied_date,
        approved_date=application.approved_date,
        rejected_date=application.rejected_date,
        approval_comments=application.approval_comments,
        rejection_reason=application.rejection_reason,
        created_at=application.created_at,
    )


@router.post(
    "/request",
    response_model=ApiResponse[LeaveRequestResponse],
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
)
async def submit_leave_request(
    db: DbSession,
    payload: LeaveRequestCreate,
) -> ApiResponse[LeaveRequestResponse]:
    """File a leave application in pending status."""
    service = LeaveService(db)
    submitted = await service.submit(
        user_ref=payload.user_id,
        leave_type_ref=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        reason=payload.reason,
        supporting_documents=payload.supporting_documents_urls,
        applied_date=payload.applied_date,
    )
    await db.commit()
    return ApiResponse(
        data=LeaveRequestResponse(
            application_id=submitted.application_id,
            application_number=submitted.application_number,
            status=submitted.status,
            total_days=submitted.total_days,
        ),
        message="Leave application submitted successfully",
    )


@router.post(
    "/approve",
    response_model=ApiResponse[LeaveDecisionResponse],
    responses=ERRORS,
)
async def decide_leave_request(
    db: DbSession,
    payload: LeaveDecisionCreate,
) -> ApiResponse[LeaveDecisionResponse]:
    """Approve or reject a pending application at its current level."""
    service = LeaveService(db)
    decision = await service.decide(
        payload.application_id,
        payload.action,
        payload.approver_id,
        payload.comments,
    )
    await db.commit()

    if decision.final:
        message = f"Leave application {decision.status} successfully"
    else:
        message = f"Approved, awaiting approval level {decision.approval_level}"
    return ApiResponse(
        data=LeaveDecisionResponse(
            application_id=decision.application_id,
            status=decision.status,
            working_days=decision.working_days,
            approval_level=decision.approval_level,
            final=decision.final,
        ),
        message=message,
    )


@router.get(
    "/balance",
    response_model=ApiResponse[LeaveBalanceResponse],
    responses=ERRORS,
)
async def get_leave_balance(
    db: DbSession,
    user_id: UserIdParam = None,
    employee_id: EmployeeIdParam = None,
    year: YearParam = None,
) -> ApiResponse[LeaveBalanceResponse]:
    """Totals across the user's leave types for a year."""
    user = await resolve_user(db, user_id=user_id, employee_id=employee_id)
    balance = await QuotaService(db).balance_for_user(user, year or current_year())
    await db.commit()
    return ApiResponse(data=LeaveBalanceResponse(**balance.to_dict()))


@router.get(
    "/quota",
    response_model=ApiResponse[UserQuotaResponse],
    responses=ERRORS,
)
async def get_leave_quota(
    db: DbSession,
    user_id: UserIdParam = None,
    employee_id: EmployeeIdParam = None,
    year: YearParam = None,
) -> ApiResponse[UserQuotaResponse]:
    """Per-leave-type quotas; missing rows are created from the type defaults."""
    user = await resolve_user(db, user_id=user_id, employee_id=employee_id)
    quota_year = year or current_year()
    pairs = await QuotaService(db).ensure_quotas_for_user(user, quota_year)
    await db.commit()

    return ApiResponse(
        data=UserQuotaResponse(
            user_id=user.id,
            user_name=user.full_name,
            employee_id=user.employee_id,
            quota_year=quota_year,
            quotas=[
                QuotaEntry(
                    leave_type_id=leave_type.id,
                    leave_type_name=leave_type.name,
                    leave_type_code=leave_type.code,
                    leave_type_color=leave_type.color,
                    allocated_days=quota.allocated_days,
                    used_days=quota.used_days,
                    remaining_days=quota.remaining_days,
                    quota_year=quota.quota_year,
                    has_annual_quota=leave_type.has_annual_quota,
                )
                for quota, leave_type in pairs
            ],
        )
    )


@router.get(
    "/history",
    response_model=ApiResponse[list[LeaveHistoryEntry]],
    responses=ERRORS,
)
async def get_leave_history(
    db: DbSession,
    user_id: UserIdParam = None,
    employee_id: EmployeeIdParam = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ApiResponse[list[LeaveHistoryEntry]]:
    """A user's applications, newest first."""
    user = await resolve_user(db, user_id=user_id, employee_id=employee_id)
    rows = await LeaveService(db).history(user, limit=limit)
    return ApiResponse(data=[history_entry(app, lt) for app, lt in rows])


@router.get(
    "/applications",
    response_model=ApiResponse[list[LeaveApplicationSummary]],
    responses=ERRORS,
)
async def list_leave_applications(
    db: DbSession,
    institution_id: Annotated[str, Query(alias="institutionId")],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> ApiResponse[list[LeaveApplicationSummary]]:
    """Applications of an institution, optionally filtered by status."""
    institution_uuid: UUID = parse_uuid(institution_id, "institutionId")
    rows = await LeaveService(db).list_applications(institution_uuid, status_filter, limit)
    return ApiResponse(
        data=[
            LeaveApplicationSummary(
                **history_entry(app, lt).model_dump(),
                user_id=user.id,
                user_name=user.full_name,
                employee_id=user.employee_id,
            )
            for app, user, lt in rows
        ]
    )


@router.get(
    "/currently-on-leave",
    response_model=ApiResponse[list[OnLeaveEntry]],
    responses=ERRORS,
)
async def list_currently_on_leave(
    db: DbSession,
    settings: AppSettings,
    institution_id: Annotated[str, Query(alias="institutionId")],
    on_date: Annotated[date | None, Query(alias="date")] = None,
) -> ApiResponse[list[OnLeaveEntry]]:
    """Who is away on approved leave on a date (default: today)."""
    institution_uuid = parse_uuid(institution_id, "institutionId")
    on_date = on_date or datetime.now(ZoneInfo(settings.default_timezone)).date()
    rows = await LeaveService(db).currently_on_leave(institution_uuid, on_date)
    return ApiResponse(
        data=[
            OnLeaveEntry(
                user_id=user.id,
                user_name=user.full_name,
                employee_id=user.employee_id,
                role=user.primary_role,
                application_id=app.id,
                application_number=app.application_number,
                leave_type_name=lt.name,
                leave_type_color=lt.color,
                start_date=app.start_date,
                end_date=app.end_date,
                total_days=app.total_days,
                days_remaining=(app.end_date - on_date).days,
            )
            for app, user, lt in rows
        ]
    )
