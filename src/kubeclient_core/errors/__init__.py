"""Error handling and Kubernetes ``Status`` support."""

from kubeclient_core.errors.exceptions import (
    APIError,
    BadRequestError,
    ClientError,
    ConfigurationError,
    ConflictError,
    ForbiddenError,
    KubeClientError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TLSHandshakeError,
    UnauthorizedError,
    UnprocessableEntityError,
)
from kubeclient_core.errors.handler import is_tls_failure, raise_for_status, translate_transport_error
from kubeclient_core.errors.models import Status

__all__ = [
    "APIError",
    "BadRequestError",
    "ClientError",
    "ConfigurationError",
    "ConflictError",
    "ForbiddenError",
    "KubeClientError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "Status",
    "TLSHandshakeError",
    "UnauthorizedError",
    "UnprocessableEntityError",
    "is_tls_failure",
    "raise_for_status",
    "translate_transport_error",
]
