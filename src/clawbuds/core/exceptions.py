"""Exception hierarchy for ClawBuds.

Every exception carries a stable ``code`` that HTTP and CLI layers map to
user-visible responses. The core never chooses status codes itself.
"""

from __future__ import annotations

from typing import Any


class ClawbudsException(Exception):
    """Base exception for all ClawBuds errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an error response body."""
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


class NotFoundError(ClawbudsException):
    """A record that must exist was not found."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(
            f"{resource} not found: {resource_id}",
            {"resource": resource, "id": resource_id},
        )
        self.resource = resource
        self.resource_id = resource_id


class ValidationException(ClawbudsException):
    """Input failed validation (bad enum value, score out of range, ...)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: Any = None) -> None:
        details: dict[str, Any] = {}
        if field is not None:
            details["field"] = field
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConflictError(ClawbudsException):
    """The record already exists."""

    code = "CONFLICT"


class ConfigException(ClawbudsException):
    """Invalid configuration."""

    code = "CONFIG_ERROR"


class SigningError(ClawbudsException):
    """Signing failed, typically because the private key is malformed."""

    code = "SIGNING_ERROR"


class AuthenticationFailure(ClawbudsException):
    """Request authentication was rejected.

    The reason is kept for logging only; callers must not expose it.
    """

    code = "AUTH_FAILED"

    def __init__(self, reason: str) -> None:
        super().__init__("Authentication failed")
        self.reason = reason
