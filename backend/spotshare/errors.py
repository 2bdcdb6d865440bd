"""
Error taxonomy for the service layer.

Services raise these; `spotshare.main` renders them as `{"detail": ...}`
with the matching status code, so routes stay thin.
"""
from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Validation failed"


class AuthenticationError(ServiceError):
    status_code = 401
    default_message = "Authentication required"


class PermissionDeniedError(ServiceError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Record not found"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "This record already exists"


class ServerError(ServiceError):
    status_code = 500


def error_body(exc: ServiceError) -> dict[str, Any]:
    body: dict[str, Any] = {"detail": exc.message}
    if exc.details is not None:
        body["errors"] = exc.details
    return body
