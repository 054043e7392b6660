"""Authorization error taxonomy and its HTTP mapping.

UnknownPermission and Forbidden are hard failures that propagate to the
caller. LookupFailed is absorbed by the permission session into the deny
posture; it only reaches the HTTP layer from the admin/platform routes that
read storage directly. StaleRefreshDiscarded never leaves the session.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AuthorizationError(Exception):
    """Base exception for authorization engine errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "AUTHORIZATION_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class UnknownPermission(AuthorizationError, ValueError):
    """A permission key that is not part of the catalog (programmer error)."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            message=f"Unknown permission: {value!r}",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="UNKNOWN_PERMISSION",
        )


class LookupFailed(AuthorizationError):
    """Transient failure reading memberships, grants or the super-admin flag."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(
            message="Could not verify permissions. Please retry.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="LOOKUP_FAILED",
        )


class Forbidden(AuthorizationError):
    """Attempted privileged mutation; rejected with no partial effect."""

    def __init__(self, message: str = "You do not have permission to perform this action."):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="FORBIDDEN",
        )


class StaleRefreshDiscarded(Exception):
    """Internal signal: a snapshot refresh finished after a newer one was issued."""

    def __init__(self, request_id: int, latest_id: int):
        self.request_id = request_id
        self.latest_id = latest_id
        super().__init__(f"refresh #{request_id} superseded by #{latest_id}")


def create_error_response(status_code: int, message: str, error_code: str) -> JSONResponse:
    """
    Format:
    {"error": {"code": "ERROR_CODE", "message": "Human-readable message"}}
    """
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": error_code, "message": message}},
    )


async def authorization_exception_handler(
    request: Request,
    exc: AuthorizationError,
) -> JSONResponse:
    logger.warning(
        "Authorization error: %s - %s",
        exc.error_code,
        exc.message,
        extra={"path": request.url.path, "method": request.method},
    )
    return create_error_response(exc.status_code, exc.message, exc.error_code)


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AuthorizationError, authorization_exception_handler)
