"""API routes."""

from smartid.api.routes.attendance import router as attendance_router
from smartid.api.routes.health import router as health_router
from smartid.api.routes.holidays import router as holidays_router
from smartid.api.routes.leave import router as leave_router
from smartid.api.routes.leave_types import router as leave_types_router
from smartid.api.routes.work_groups import router as work_groups_router

__all__ = [
    "attendance_router",
    "health_router",
    "holidays_router",
    "leave_router",
    "leave_types_router",
    "work_groups_router",
]
