"""Service-level error taxonomy mapped onto HTTP status codes."""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    status_code = 500
    message = "Server error"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    status_code = 400
    message = "Invalid request"


class Conflict(ServiceError):
    status_code = 400
    message = "Resource already exists"


class InvalidOrExpired(ServiceError):
    status_code = 400
    message = "Invalid or expired OTP"


class NoCompatibleSlot(ServiceError):
    status_code = 400
    message = "No compatible slots available"


class Unauthenticated(ServiceError):
    status_code = 401
    message = "Authentication required"


class InvalidCredentials(ServiceError):
    status_code = 401
    message = "Invalid credentials"


class Forbidden(ServiceError):
    status_code = 403
    message = "Admin access required"


class NotVerified(ServiceError):
    status_code = 403
    message = "Account not verified. Please verify OTP."


class NotFound(ServiceError):
    status_code = 404
    message = "Not found"


class EmailDeliveryFailed(ServiceError):
    status_code = 500
    message = "Failed to send email"


class ServerError(ServiceError):
    status_code = 500
    message = "Server error"
