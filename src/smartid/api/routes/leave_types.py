"""Leave type setup endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from smartid.api.dependencies import DbSession, ServiceToken
from smartid.api.schemas import ApiResponse, ErrorResponse, LeaveTypeCreate, LeaveTypeResponse
from smartid.errors import NotFoundError, ValidationError
from smartid.models import Institution, LeaveType
from smartid.services.user_lookup import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leave-types", tags=["setup"])


@router.get(
    "",
    response_model=ApiResponse[list[LeaveTypeResponse]],
    responses={400: {"model": ErrorResponse}},
)
async def list_leave_types(
    db: DbSession,
    institution_id: Annotated[str, Query(alias="institutionId")],
    include_inactive: Annotated[bool, Query(alias="includeInactive")] = False,
) -> ApiResponse[list[LeaveTypeResponse]]:
    """Leave types of an institution in display order."""
    query = select(LeaveType).where(
        LeaveType.institution_id == parse_uuid(institution_id, "institutionId")
    )
    if not include_inactive:
        query = query.where(LeaveType.is_active.is_(True))
    result = await db.execute(query.order_by(LeaveType.display_order, LeaveType.name))
    return ApiResponse(
        data=[LeaveTypeResponse.model_validate(lt) for lt in result.scalars().all()]
    )


@router.post(
    "",
    response_model=ApiResponse[LeaveTypeResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[ServiceToken],
)
async def create_leave_type(
    db: DbSession,
    payload: LeaveTypeCreate,
) -> ApiResponse[LeaveTypeResponse]:
    """Create a leave type; codes are unique within an institution."""
    if await db.get(Institution, payload.institution_id) is None:
        raise NotFoundError("Institution not found")

    values = payload.model_dump()
    values["code"] = payload.code.strip().upper()
    leave_type = LeaveType(**values)
    try:
        async with db.begin_nested():
            db.add(leave_type)
    except IntegrityError:
        raise ValidationError(f"Leave type code '{leave_type.code}' already exists") from None
    await db.commit()

    logger.info("Created leave type %s (%s)", leave_type.name, leave_type.code)
    return ApiResponse(
        data=LeaveTypeResponse.model_validate(leave_type),
        message="Leave type created successfully",
    )
