"""Exception classes for the reconciliation engine and the GitLab client."""

from typing import Any


class ReconcilerError(Exception):
    """Base exception for everything raised by gitlab_reconciler."""

    pass


class ConfigurationError(ReconcilerError, ValueError):
    """Raised when configuration cannot be loaded from the environment or a file."""

    pass


class MalformedIdentityError(ReconcilerError):
    """Raised when an identity string cannot be decoded."""

    def __init__(self, identity: str, reason: str) -> None:
        """Initialize malformed identity error.

        Args:
            identity: The offending identity string, verbatim
            reason: What was expected
        """
        super().__init__(f"Malformed identity {identity!r}: {reason}")
        self.identity = identity
        self.reason = reason


class ValidationError(ReconcilerError):
    """Raised when a value cannot be represented on the wire or in the bag."""

    def __init__(
        self,
        message: str,
        attribute: str | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.attribute = attribute
        self.value = value


class RemoteRequestError(ReconcilerError):
    """Base exception for failed calls against the remote API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize remote request error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            response_text: Response body text if available
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.response_text:
            # Truncate response text for readability
            response_preview = self.response_text[:200]
            if len(self.response_text) > 200:
                response_preview += "..."
            parts.append(f"Response: {response_preview}")
        return " | ".join(parts)


class NetworkError(RemoteRequestError):
    """Raised for network-related errors."""

    pass


class AuthenticationError(RemoteRequestError):
    """Raised when authentication fails (401)."""

    pass


class AuthorizationError(RemoteRequestError):
    """Raised when authorization fails (403)."""

    pass


class ClientError(RemoteRequestError):
    """Raised for 4xx client errors."""

    pass


class ResourceNotFoundError(ClientError):
    """Raised when a requested resource is not found (404)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 404,
        response_text: str | None = None,
    ) -> None:
        super().__init__(message, status_code, response_text)


class ConflictError(ClientError):
    """Raised when there's a conflict with the current state (409)."""

    pass


class RateLimitError(RemoteRequestError):
    """Raised when rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_text: Response body text
            retry_after: Seconds to wait before retrying
        """
        super().__init__(message, status_code, response_text)
        self.retry_after = retry_after


class ServerError(RemoteRequestError):
    """Raised for 5xx server errors."""

    pass


class PaginationError(RemoteRequestError):
    """Raised when a paginated listing never reaches a terminal page."""

    pass


class PollTimeoutError(ReconcilerError, TimeoutError):
    """Raised when an asynchronous remote operation did not complete in time."""

    def __init__(
        self,
        resource: str,
        elapsed: float,
        last_state: str | None = None,
    ) -> None:
        """Initialize poll timeout error.

        Args:
            resource: Human-readable name of the resource being waited on
            elapsed: Seconds spent waiting
            last_state: Last state reported by the probe
        """
        message = f"Timed out after {elapsed:.1f}s waiting for {resource}"
        if last_state:
            message += f" (last state: {last_state})"
        super().__init__(message)
        self.resource = resource
        self.elapsed = elapsed
        self.last_state = last_state


class OperationCancelledError(ReconcilerError):
    """Raised when the caller cancelled a long-running reconciliation step."""

    def __init__(self, resource: str) -> None:
        super().__init__(f"Operation on {resource} was cancelled")
        self.resource = resource
