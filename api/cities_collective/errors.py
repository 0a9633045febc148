"""Domain exceptions raised by service functions.

Route handlers never build error responses by hand; the handlers registered
in ``main`` turn these into ``{"error": message}`` JSON bodies.
"""

from __future__ import annotations

from fastapi import status


class DomainError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class UnauthorizedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class InternalError(DomainError):
    pass


class QueryTimeoutError(InternalError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "Database query timed out"
