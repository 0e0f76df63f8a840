"""Institution holiday calendar endpoints."""

import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query, status
from sqlalchemy import func, or_, select

from smartid.api.dependencies import DbSession, ServiceToken
from smartid.api.schemas import ApiResponse, ErrorResponse, HolidayCreate, HolidayResponse
from smartid.errors import NotFoundError, ValidationError
from smartid.models import Institution, InstitutionHoliday
from smartid.services.user_lookup import parse_uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/holidays", tags=["setup"])


@router.get(
    "",
    response_model=ApiResponse[list[HolidayResponse]],
    responses={400: {"model": ErrorResponse}},
)
async def list_holidays(
    db: DbSession,
    institution_id: Annotated[str, Query(alias="institutionId")],
    year: Annotated[int | None, Query(ge=1970, le=9999)] = None,
    holiday_type: Annotated[str | None, Query(alias="type")] = None,
) -> ApiResponse[list[HolidayResponse]]:
    """Holidays of an institution, optionally for one year; recurring ones always included."""
    query = select(InstitutionHoliday).where(
        InstitutionHoliday.institution_id == parse_uuid(institution_id, "institutionId")
    )
    if year is not None:
        first, last = date(year, 1, 1), date(year, 12, 31)
        query = query.where(
            or_(
                InstitutionHoliday.is_recurring.is_(True),
                (InstitutionHoliday.holiday_date <= last)
                & (func.coalesce(InstitutionHoliday.end_date, InstitutionHoliday.holiday_date) >= first),
            )
        )
    if holiday_type:
        query = query.where(InstitutionHoliday.holiday_type == holiday_type)

    result = await db.execute(query.order_by(InstitutionHoliday.holiday_date))
    return ApiResponse(
        data=[HolidayResponse.model_validate(h) for h in result.scalars().all()]
    )


@router.post(
    "",
    response_model=ApiResponse[HolidayResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    dependencies=[ServiceToken],
)
async def create_holiday(
    db: DbSession,
    payload: HolidayCreate,
) -> ApiResponse[HolidayResponse]:
    """Add a holiday (single day or span) to an institution's calendar."""
    if payload.end_date is not None and payload.end_date < payload.holiday_date:
        raise ValidationError("End date must be after or equal to start date")
    if await db.get(Institution, payload.institution_id) is None:
        raise NotFoundError("Institution not found")

    duplicate = await db.scalar(
        select(InstitutionHoliday.id).where(
            InstitutionHoliday.institution_id == payload.institution_id,
            InstitutionHoliday.name == payload.name,
            InstitutionHoliday.holiday_date == payload.holiday_date,
        )
    )
    if duplicate is not None:
        raise ValidationError("A holiday with this name and date already exists")

    values = payload.model_dump()
    values["affected_work_groups"] = [str(wg) for wg in payload.affected_work_groups]
    holiday = InstitutionHoliday(**values)
    db.add(holiday)
    await db.commit()

    logger.info("Added holiday %s on %s", holiday.name, holiday.holiday_date)
    return ApiResponse(
        data=HolidayResponse.model_validate(holiday),
        message="Holiday created successfully",
    )
