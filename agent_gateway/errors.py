"""
Gateway exceptions.

Each exception carries the HTTP status and error code the API layer
returns for it.
"""

from typing import Optional


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        body = {"error": self.message, "code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(GatewayError):
    """Raised when a request field is missing or malformed."""

    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class NotFoundError(GatewayError):
    """Raised when an agent, conversation or memory block does not exist."""

    status_code = 404
    error_code = "not_found"


class ConflictError(GatewayError):
    """Raised when a conversation is used with an agent that does not own it."""

    status_code = 409
    error_code = "conflict"


class ServiceUnavailableError(GatewayError):
    """Raised when a required backing service is not reachable or not configured."""

    status_code = 503
    error_code = "service_unavailable"
