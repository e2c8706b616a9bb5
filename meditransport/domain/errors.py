"""
Error taxonomy shared by services and the HTTP layer.

Services raise these; ``meditransport.api.errors`` renders them into the
``{error, status, timestamp, path}`` envelope.
"""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    status_code: int = 500
    default_message: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, *, details: Any = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation Error"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized Access"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"


class InvalidStateTransition(Conflict):
    """Raised when a ride status change violates the state machine."""


class ServiceError(AppError):
    """Storage or payment-provider failure; safe for the client to retry."""

    status_code = 500
    default_message = "Service temporarily unavailable"
    retryable = True
