"""HTTP API exceptions shared by the Bitbucket and Gitea clients."""

from typing import Optional


class APIError(Exception):
    """Base exception for remote API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    @property
    def transient(self) -> bool:
        """Whether retrying the same request may succeed."""
        return self.status_code is None or self.status_code >= 500


class AuthenticationError(APIError):
    """Authentication error with remote API."""

    @property
    def transient(self) -> bool:
        return False


class RateLimitError(APIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    @property
    def transient(self) -> bool:
        return True


class NotFoundError(APIError):
    """Resource not found error."""

    @property
    def transient(self) -> bool:
        return False


class PermissionDeniedError(APIError):
    """Permission denied error."""

    @property
    def transient(self) -> bool:
        return False


class ConflictError(APIError):
    """Resource already exists or the request was rejected as invalid."""

    @property
    def transient(self) -> bool:
        return False
