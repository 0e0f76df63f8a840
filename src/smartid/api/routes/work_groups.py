"""Work group endpoints: schedules and member assignment."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status
from sqlalchemy import select

from smartid.api.dependencies import DbSession, ServiceToken
from smartid.api.schemas import (
    ApiResponse,
    AssignUsersRequest,
    AssignUsersResponse,
    ErrorResponse,
    WorkGroupCreate,
    WorkGroupResponse,
)
from smartid.errors import NotFoundError, ValidationError
from smartid.models import Institution, User, UserWorkGroupAssignment, WorkGroup
from smartid.services.user_lookup import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/work-groups", tags=["setup"])


@router.get(
    "",
    response_model=ApiResponse[list[WorkGroupResponse]],
    responses={400: {"model": ErrorResponse}},
)
async def list_work_groups(
    db: DbSession,
    institution_id: Annotated[str, Query(alias="institutionId")],
) -> ApiResponse[list[WorkGroupResponse]]:
    result = await db.execute(
        select(WorkGroup)
        .where(WorkGroup.institution_id == parse_uuid(institution_id, "institutionId"))
        .order_by(WorkGroup.name)
    )
    return ApiResponse(
        data=[WorkGroupResponse.model_validate(wg) for wg in result.scalars().all()]
    )


@router.post(
    "",
    response_model=ApiResponse[WorkGroupResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[ServiceToken],
)
async def create_work_group(
    db: DbSession,
    payload: WorkGroupCreate,
) -> ApiResponse[WorkGroupResponse]:
    """Create a work group schedule."""
    if payload.default_end_time <= payload.default_start_time:
        raise ValidationError("defaultEndTime must be after defaultStartTime")
    if await db.get(Institution, payload.institution_id) is None:
        raise NotFoundError("Institution not found")

    work_group = WorkGroup(**payload.model_dump(), is_active=True)
    db.add(work_group)
    await db.commit()

    logger.info(
        "Created work group %s (%s-%s, days %s)",
        work_group.name,
        work_group.default_start_time,
        work_group.default_end_time,
        work_group.working_days,
    )
    return ApiResponse(
        data=WorkGroupResponse.model_validate(work_group),
        message="Work group created successfully",
    )


@router.post(
    "/{work_group_id}/assign-users",
    response_model=ApiResponse[AssignUsersResponse],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[ServiceToken],
)
async def assign_users(
    db: DbSession,
    work_group_id: Annotated[UUID, Path()],
    payload: AssignUsersRequest,
) -> ApiResponse[AssignUsersResponse]:
    """Assign institution users to a work group; existing members are skipped."""
    work_group = await db.get(WorkGroup, work_group_id)
    if work_group is None:
        raise NotFoundError("Work group not found")

    user_ids = set(payload.user_ids)
    result = await db.execute(
        select(User.id).where(
            User.id.in_(user_ids),
            User.institution_id == work_group.institution_id,
        )
    )
    known = set(result.scalars().all())
    missing = user_ids - known
    if missing:
        raise ValidationError(
            "Users not found in the work group's institution: "
            + ", ".join(sorted(str(u) for u in missing))
        )

    result = await db.execute(
        select(UserWorkGroupAssignment).where(
            UserWorkGroupAssignment.work_group_id == work_group_id,
            UserWorkGroupAssignment.user_id.in_(user_ids),
        )
    )
    existing = {a.user_id: a for a in result.scalars().all()}

    assigned = reactivated = already = 0
    for user_id in sorted(user_ids):
        assignment = existing.get(user_id)
        if assignment is None:
            db.add(UserWorkGroupAssignment(user_id=user_id, work_group_id=work_group_id, is_active=True))
            assigned += 1
        elif not assignment.is_active:
            assignment.is_active = True
            reactivated += 1
        else:
            already += 1
    await db.commit()

    logger.info(
        "Work group %s: %s assigned, %s reactivated, %s already assigned",
        work_group.name,
        assigned,
        reactivated,
        already,
    )
    return ApiResponse(
        data=AssignUsersResponse(
            work_group_id=work_group_id,
            assigned=assigned,
            reactivated=reactivated,
            already_assigned=already,
        ),
        message=f"{assigned + reactivated} user(s) assigned to {work_group.name}",
    )
