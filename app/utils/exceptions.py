"""Custom exception classes and error handling utilities."""
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger


class LoyaltyNotificationsError(Exception):
    """Base exception for the application.

    Every subclass carries a stable ``kind`` that clients can branch on and the
    HTTP status it maps to. ``details`` is merged into the error response body.
    """

    kind: str = "error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(LoyaltyNotificationsError):
    """Data validation errors."""

    kind = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class AuthorizationError(LoyaltyNotificationsError):
    """Actor is not allowed to act on the target organization."""

    kind = "authorization_error"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(LoyaltyNotificationsError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(LoyaltyNotificationsError):
    """Requested state change conflicts with the record's current state."""

    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class QuotaExceededError(LoyaltyNotificationsError):
    """Organization has no sending headroom; ``details['limits']`` holds the snapshot."""

    kind = "quota_exceeded"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class ConfigurationError(LoyaltyNotificationsError):
    kind = "configuration_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ModerationError(LoyaltyNotificationsError):
    """Base class for moderation gate failures. Never a content verdict."""


class ModerationUnavailableError(ModerationError):
    """Moderation classifier is not configured (permanent)."""

    kind = "moderation_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ModerationServiceError(ModerationError):
    """Moderation classifier call failed (transient, caller may retry)."""

    kind = "moderation_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


class ModerationMalformedResponseError(ModerationError):
    """Moderation classifier answered with something that is not a verdict."""

    kind = "moderation_malformed"
    status_code = status.HTTP_502_BAD_GATEWAY


class DispatchError(LoyaltyNotificationsError):
    """Dispatch infrastructure failed after the campaign entered ``sending``."""

    kind = "dispatch_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_payload(error: LoyaltyNotificationsError) -> Dict[str, Any]:
    """Render a domain error as the structured JSON body returned to callers."""

    return jsonable_encoder({**error.details, "detail": error.message, "kind": error.kind})


async def handle_application_error(request: Request, error: LoyaltyNotificationsError) -> JSONResponse:
    """Translate domain errors raised by services into HTTP responses."""

    if error.status_code >= 500:
        logger.error(
            "Request failed",
            path=request.url.path,
            kind=error.kind,
            message=error.message,
        )
    else:
        logger.warning(
            "Request rejected",
            path=request.url.path,
            kind=error.kind,
            message=error.message,
        )
    return JSONResponse(status_code=error.status_code, content=error_payload(error))
