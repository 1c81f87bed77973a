"""Core definitions shared by every cloudrift module."""

from .exceptions import (
    APIError,
    AuthenticationError,
    CancellationError,
    CloudRiftError,
    ConfigurationError,
    CreateError,
    DeleteError,
    InitializationError,
    NotFoundError,
    OperationError,
    ReadError,
    SchemaError,
    TimeoutError,
    TransportError,
    ValidationError,
)

__all__ = [
    "APIError",
    "AuthenticationError",
    "CancellationError",
    "CloudRiftError",
    "ConfigurationError",
    "CreateError",
    "DeleteError",
    "InitializationError",
    "NotFoundError",
    "OperationError",
    "ReadError",
    "SchemaError",
    "TimeoutError",
    "TransportError",
    "ValidationError",
]
