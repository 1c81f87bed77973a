"""Internal machinery: HTTP transport."""

from .http import (
    API_KEY_HEADER,
    TRANSPORT_ERRORS,
    ApiKeyAuth,
    Auth,
    HttpClient,
    Response,
    is_transport_error,
)

__all__ = [
    "API_KEY_HEADER",
    "TRANSPORT_ERRORS",
    "ApiKeyAuth",
    "Auth",
    "HttpClient",
    "Response",
    "is_transport_error",
]
