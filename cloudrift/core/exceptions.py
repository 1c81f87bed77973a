"""Custom exception hierarchy for cloudrift.

All cloudrift-specific exceptions inherit from CloudRiftError, enabling
callers to catch every client and lifecycle failure with a single except
clause. NotFoundError is kept distinct from the other failures so that
idempotent operations can treat it as success or as a removal signal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloudrift.instances import InstanceState


class CloudRiftError(Exception):
    """Base exception for all cloudrift errors."""


class ValidationError(CloudRiftError):
    """Raised when required input is missing or malformed, before any request is sent."""


class ConfigurationError(CloudRiftError):
    """Raised for invalid configuration or missing required settings."""


class AuthenticationError(CloudRiftError):
    """Raised when the API token is rejected or resolves to no identity."""


class InitializationError(CloudRiftError):
    """Raised when the client cannot be brought into a usable state."""


class NotFoundError(CloudRiftError):
    """Raised when the targeted resource does not exist (or is Inactive)."""

    def __init__(self, message: str = "resource not found") -> None:
        super().__init__(message)


class TransportError(CloudRiftError):
    """Raised when a request keeps failing at the network level after all retries."""

    def __init__(self, url: str, retries: int, cause: BaseException) -> None:
        self.url = url
        self.retries = retries
        self.cause = cause
        super().__init__(
            f"request to {url} failed: {cause!r}, the failed request was retried: {retries}x"
        )


class APIError(CloudRiftError):
    """Raised for non-2xx, non-404 responses."""

    def __init__(self, url: str, status: int, body: str) -> None:
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"request {url} failed: HTTP {status}: body: {body}")


class SchemaError(CloudRiftError):
    """Raised when a success response does not have the expected shape."""


class TimeoutError(CloudRiftError):  # noqa: A001
    """Raised when the provisioning (or teardown) deadline is exceeded."""

    def __init__(self, message: str, state: InstanceState | None = None) -> None:
        self.state = state
        super().__init__(message)


class CancellationError(CloudRiftError):
    """Raised when the external cancellation signal is observed while polling."""

    def __init__(self, message: str, state: InstanceState | None = None) -> None:
        self.state = state
        super().__init__(message)


class OperationError(CloudRiftError):
    """A lifecycle operation failed; carries the operation, resource id and cause."""

    operation = "operation"

    def __init__(
        self,
        resource_id: str,
        cause: BaseException,
        state: InstanceState | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.cause = cause
        self.state = state
        super().__init__(f"{self.operation} {resource_id} failed: {cause}")


class CreateError(OperationError):
    """Raised when polling a freshly rented instance fails."""

    operation = "create"


class ReadError(OperationError):
    """Raised when refreshing an instance fails for a reason other than absence."""

    operation = "read"


class DeleteError(OperationError):
    """Raised when terminating an instance, or confirming its absence, fails."""

    operation = "delete"
