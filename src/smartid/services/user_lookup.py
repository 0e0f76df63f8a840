"""Resolve the active user a request refers to."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from smartid.errors import NotFoundError, ValidationError
from smartid.models import User


def parse_uuid(value: str | UUID, field_name: str) -> UUID:
    """Parse a UUID, raising ValidationError with the field name on failure."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {field_name} format") from None


async def resolve_user(
    session: AsyncSession,
    user_id: str | UUID | None = None,
    employee_id: str | None = None,
) -> User:
    """Find an active user by employee id, or by auth user id / user id.

    Mobile clients send the auth provider's id while the admin UI sends the
    row id; both are accepted for ``user_id``.
    """
    if not user_id and not employee_id:
        raise ValidationError("Either userId or employeeId is required")

    query = select(User).where(User.status == "active")
    if employee_id:
        query = query.where(User.employee_id == employee_id)
        not_found = "User not found with provided employee ID"
    else:
        uid = parse_uuid(str(user_id), "userId")
        query = query.where(or_(User.auth_user_id == uid, User.id == uid))
        not_found = "User not found"

    result = await session.execute(query.limit(1))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(not_found)
    return user
