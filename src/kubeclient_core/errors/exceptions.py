"""Structured exceptions for the cluster API client.

Every error raised by this library derives from :class:`KubeClientError`.
HTTP failures returned by the API server are :class:`APIError` subclasses;
failures while resolving configuration or credentials have their own
classes so callers can tell them apart.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from kubeclient_core.errors.models import Status


class KubeClientError(Exception):
    """Base exception for all client errors."""

    pass


class ConfigurationError(KubeClientError):
    """Raised when a kubeconfig or inline configuration cannot be resolved.

    Covers unknown context, cluster, or user names, a missing server
    address, and unsupported authentication settings. Never retried.
    """

    pass


class TLSHandshakeError(KubeClientError):
    """Raised when the TLS handshake with the API server fails.

    Typical causes are an untrusted server certificate or a client
    certificate the server refuses.
    """

    pass


class APIError(KubeClientError):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: "httpx.Response | None" = None,
        status: "Status | None" = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response
        self.status = status


class ClientError(APIError):
    """4xx client errors."""

    pass


class BadRequestError(ClientError):
    """400 Bad Request."""

    pass


class UnauthorizedError(ClientError):
    """401 Unauthorized.

    Raised when the server rejects the credentials attached to a request.
    Not retried by the client.
    """

    pass


class ForbiddenError(ClientError):
    """403 Forbidden."""

    pass


class NotFoundError(ClientError):
    """404 Not Found."""

    pass


class ConflictError(ClientError):
    """409 Conflict."""

    pass


class UnprocessableEntityError(ClientError):
    """422 Unprocessable Entity."""

    pass


class RateLimitError(ClientError):
    """429 Too Many Requests."""

    def __init__(self, message: str, retry_after: int | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(APIError):
    """5xx server errors."""

    pass
