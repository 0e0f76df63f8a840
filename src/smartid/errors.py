"""Error kinds raised by services and mapped to HTTP responses by the API."""

from __future__ import annotations


class SmartIDError(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(SmartIDError):
    """Missing or malformed input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(SmartIDError):
    """A referenced entity does not exist (or is not visible to the tenant)."""

    status_code = 404
    code = "NOT_FOUND"


class StateError(SmartIDError):
    """The entity is not in a state that allows the requested action."""

    status_code = 400
    code = "INVALID_STATE"

    def __init__(
        self,
        message: str,
        from_status: str | None = None,
        action: str | None = None,
    ):
        self.from_status = from_status
        self.action = action
        super().__init__(message)


class UpstreamError(SmartIDError):
    """The database or another backing service failed."""

    status_code = 500
    code = "UPSTREAM_ERROR"


class AuthError(SmartIDError):
    """Missing credentials (401) or insufficient privilege (403)."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str, forbidden: bool = False):
        if forbidden:
            self.status_code = 403
            self.code = "FORBIDDEN"
        super().__init__(message)
