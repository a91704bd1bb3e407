"""
Domain-specific exceptions for the scheduling core.

Services raise these with a machine-readable ``code`` so callers can react
(offer another slot, show the blackout reason) without parsing messages.
The app registers a handler that renders ``to_dict()`` under ``detail``.
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}


class ValidationError(DomainException):
    """Malformed input: missing fields, unsupported duration, past timestamp."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(DomainException):
    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenError(DomainException):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(DomainException):
    """The requested slot is already held by a non-terminal booking."""

    status_code = status.HTTP_409_CONFLICT


class PolicyDenied(DomainException):
    """A reschedule, make-up or refund rule failed; the transition is blocked."""

    status_code = 422


class FatalConfigError(DomainException):
    """Required settings are missing; the whole operation is aborted."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ExternalSyncError(DomainException):
    """External calendar call failed. Logged by the reconciler, never surfaced to booking callers."""

    status_code = status.HTTP_502_BAD_GATEWAY
