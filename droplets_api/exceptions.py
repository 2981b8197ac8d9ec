"""Domain-specific exceptions for the Droplets API.

Every error carries the HTTP status it maps to. The message of a 4xx error is
shown to the client as is; for 5xx errors only ``public_message`` is shown and
the detailed message stays in the logs.
"""

from typing import Any


class DropletsAPIError(Exception):
    """Base exception for all Droplets API errors."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.public_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def client_message(self) -> str:
        """Message safe to return to the client."""
        if self.status_code >= 500:
            return self.public_message
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to the API error envelope."""
        return {"success": False, "error": self.client_message}


class ValidationError(DropletsAPIError):
    """Error related to input validation (not Pydantic)."""

    status_code = 400
    public_message = "Invalid request"


class AuthenticationError(DropletsAPIError):
    """Missing, invalid or expired session."""

    status_code = 401
    public_message = "Unauthorized"


class AuthorizationError(DropletsAPIError):
    """Authenticated but not allowed to act on the resource."""

    status_code = 403
    public_message = "Forbidden"


class NotFoundError(DropletsAPIError):
    """Requested resource does not exist."""

    status_code = 404
    public_message = "Not found"


class ConflictError(DropletsAPIError):
    """Resource already exists."""

    status_code = 409
    public_message = "Conflict"


class RateLimitExceededError(DropletsAPIError):
    """A per-user quota has been used up."""

    status_code = 429
    public_message = "Rate limit exceeded"


class ConfigurationError(DropletsAPIError):
    """Error related to configuration issues."""

    public_message = "Service not configured"


class ImageProviderError(DropletsAPIError):
    """Error related to image provider operations."""

    public_message = "Failed to generate creation"


class ImageValidationError(ImageProviderError):
    """Provider returned bytes that are not a PNG image."""


class StorageError(DropletsAPIError):
    """Error related to storage operations."""

    status_code = 503
    public_message = "Storage service unavailable"
