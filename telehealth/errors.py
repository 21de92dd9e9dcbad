"""Gateway exceptions and the HTTP status each one maps to."""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base class for errors surfaced to API callers as JSON."""

    status_code = 500
    public_message = "Something went wrong. Please try again."

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.public_message, "details": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class BookingValidationError(GatewayError):
    """Missing or malformed request data, unknown service or provider."""

    status_code = 400
    public_message = "Some of the information provided is missing or invalid."


class RemoteAPIError(GatewayError):
    """A call to the scheduling platform failed."""

    status_code = 500
    public_message = "We're sorry, we could not reach the scheduling system."

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message, errors)
        self.http_status = http_status


class PaymentFailedError(RemoteAPIError):
    """Payment capture was rejected; no booking was created."""

    public_message = "We're sorry, your payment could not be processed. No appointment was booked."


class AuthenticationError(GatewayError):
    status_code = 401
    public_message = "Invalid credentials."


class AppointmentNotFoundError(GatewayError):
    status_code = 404
    public_message = "We could not find an appointment matching that access code and email."
