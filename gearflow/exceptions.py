"""Exception hierarchy shared by services, the API and the CLI."""

from typing import Optional


class GearFlowError(RuntimeError):
    """Base exception for GearFlow operations."""


class ConfigurationError(GearFlowError):
    """Raised when required settings (backend URL / key) are missing."""


class BackendError(GearFlowError):
    """Raised when the backend answers with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class AuthenticationError(GearFlowError):
    """Raised when a request carries no valid access token."""


class RequestValidationError(GearFlowError):
    """Raised when a workflow action is not allowed in the current state."""


class ConflictError(RequestValidationError):
    """Raised when requested gear is not available in the needed quantity."""


class PermissionDeniedError(GearFlowError):
    """Raised when the acting user may not touch the target record."""


class NotFoundError(GearFlowError):
    """Raised when a record does not exist."""


__all__ = [
    "GearFlowError",
    "ConfigurationError",
    "BackendError",
    "AuthenticationError",
    "RequestValidationError",
    "ConflictError",
    "PermissionDeniedError",
    "NotFoundError",
]
