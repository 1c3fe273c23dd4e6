"""
Custom application exceptions.
"""
from typing import Optional


class TracklineAppException(Exception):
    """Base exception for the time tracking app."""
    pass


class OrganizationNotFoundError(TracklineAppException):
    """Raised when an organization is not found."""
    pass


class UserNotFoundError(TracklineAppException):
    """Raised when a user is not found."""
    pass


class TimeEntryNotFoundError(TracklineAppException):
    """Raised when a time entry is not found."""
    pass


class ScreenshotNotFoundError(TracklineAppException):
    """Raised when a screenshot is not found."""
    pass


class ScreenshotDeletionNotAllowedError(TracklineAppException):
    """Raised when the organization does not allow screenshot deletion."""
    pass


class GracePeriodExpiredError(TracklineAppException):
    """Raised when a screenshot is older than the deletion grace period."""
    pass


class UnauthorizedError(TracklineAppException):
    """Raised when user is not authorized."""
    pass


class IntegrationNotFoundError(TracklineAppException):
    """Raised when an integration is not found or inactive."""
    pass


class ResourceNotLinkedError(TracklineAppException):
    """Raised when a time entry has no integration mapping."""
    pass


class SyncedResourceNotFoundError(TracklineAppException):
    """Raised when a synced resource is not found."""
    pass


class ResourcePathError(TracklineAppException):
    """Raised when a resource's ancestry is cyclic or deeper than the provider allows."""
    pass


class StorageError(TracklineAppException):
    """Raised when object storage is unavailable or misconfigured."""
    pass


class ProviderNotFoundError(TracklineAppException):
    """Raised when a provider id has no registered adapter."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider not found: {provider_id}")


# ================================================================================
# PROVIDER ERRORS
# ================================================================================

class IntegrationError(TracklineAppException):
    """Error reported by an external provider, carrying its name, code and HTTP status."""

    def __init__(
        self,
        message: str,
        provider: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.provider = provider
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(IntegrationError):
    """Provider rejected the credentials; the admin has to reconnect."""

    def __init__(self, provider: str, message: str = "Authentication failed"):
        super().__init__(message, provider, code="AUTH_FAILED", status_code=401)


class RateLimitError(IntegrationError):
    """Provider throttled the request."""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after:
            message = f"{message}, retry after {retry_after}s"
        super().__init__(message, provider, code="RATE_LIMIT", status_code=429)


class ResourceNotFoundError(IntegrationError):
    """Provider reported a 404 for a resource."""

    def __init__(self, provider: str, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            provider,
            code="NOT_FOUND",
            status_code=404,
        )
