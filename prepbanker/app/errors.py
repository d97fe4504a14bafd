"""
Exceptions raised by the portal's service layer.

Route handlers catch these and turn them into toast messages; anything that
escapes a handler is rendered by the error handlers in ``extensions``.
"""

from __future__ import annotations

from typing import Any


class PortalError(Exception):
    """Base exception for all portal errors."""

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", details: dict[str, Any] | None = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class BackendError(PortalError):
    """A call to the hosted backend failed."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, code="BACKEND_ERROR", details=details)


class AuthenticationError(PortalError):
    """The backend rejected the credentials or token."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class NotFoundError(PortalError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class FormError(PortalError):
    """Submitted form data failed validation."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"field": field} if field else None)
        self.field = field
