# keystead/app/core/exceptions.py
"""
Domain errors raised by the services and mapped to HTTP responses in main.py.

Each class carries the status code it is rendered with, so handlers never
need a lookup table.
"""
from typing import Optional

from fastapi import status


class KeysteadError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.detail)
        self.detail = detail or self.detail


class NotFoundError(KeysteadError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Resource not found"


class UnauthorizedError(KeysteadError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Unauthorized"


class InvalidTokenError(UnauthorizedError):
    """
    Any token failure: bad signature, wrong scope, expired, missing claims.

    The boundary always answers with the generic detail; the specific
    cause is only kept in `reason` for logging.
    """
    detail = "Invalid or expired token"

    def __init__(self, reason: str = "invalid token"):
        super().__init__(self.detail)
        self.reason = reason


class SecurityViolationError(KeysteadError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Forbidden"


class PayloadFormatError(KeysteadError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Malformed payload"


class ConflictError(KeysteadError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Conflict"


class TransientFailureError(KeysteadError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Temporary failure, please retry"
