"""Translation of HTTP responses and transport failures into client errors."""

import logging
import ssl

import httpx

from kubeclient_core.errors.exceptions import (
    APIError,
    BadRequestError,
    ClientError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    ServerError,
    TLSHandshakeError,
    UnauthorizedError,
    UnprocessableEntityError,
)
from kubeclient_core.errors.models import Status

logger = logging.getLogger(__name__)

# Fragments OpenSSL and httpcore use in handshake failure messages
_TLS_ERROR_MARKERS = ("SSL", "CERTIFICATE", "TLSV1_ALERT", "HANDSHAKE")
# Alerts a server sends when it rejects the client certificate
_TLS_ALERT_MARKERS = ("TLSV1_ALERT", "TLSV13_ALERT")


def raise_for_status(response: httpx.Response) -> None:
    """Raise appropriate exception for HTTP error responses.

    Parses a Kubernetes ``Status`` body if present, otherwise uses the
    standard HTTP status code to exception mapping.

    Args:
        response: HTTP response object

    Raises:
        APIError subclass based on status code
    """
    if response.is_success:
        return

    status = Status.from_response(response)

    status_code = response.status_code

    exception_map = {
        400: BadRequestError,
        401: UnauthorizedError,
        403: ForbiddenError,
        404: NotFoundError,
        409: ConflictError,
        422: UnprocessableEntityError,
        429: RateLimitError,
    }

    if status_code in exception_map:
        exc_class = exception_map[status_code]
    elif 400 <= status_code < 500:
        exc_class = ClientError
    elif 500 <= status_code < 600:
        exc_class = ServerError
    else:
        exc_class = APIError

    if status:
        message = status.to_exception_message()
    else:
        response_text = response.text[:200]
        message = f"HTTP {status_code}: {response_text}" if response_text else f"HTTP {status_code}"

    if exc_class == RateLimitError:
        retry_after = None
        if "retry-after" in response.headers:
            try:
                retry_after = int(response.headers["retry-after"])
            except (ValueError, TypeError):
                retry_after = None
        raise exc_class(
            message=message,
            retry_after=retry_after,
            status_code=status_code,
            response=response,
            status=status,
        )

    if exc_class == UnauthorizedError:
        logger.debug(f"API server rejected the request credentials: {message}")

    raise exc_class(
        message=message,
        status_code=status_code,
        response=response,
        status=status,
    )


def is_tls_failure(exc: BaseException) -> bool:
    """Check whether a transport error is a failed TLS handshake.

    httpx reports handshake failures as ``ConnectError`` wrapping the
    ``ssl.SSLError``, so the cause/context chain of a ``ConnectError`` is
    walked. Under TLS 1.3 a server rejecting the client certificate sends
    its alert after the client considers the handshake done; such alerts
    surface on the first read and are recognised by their alert name.
    Other TLS errors raised while reading or writing are not handshake
    failures.

    Args:
        exc: The exception to inspect

    Returns:
        True if the handshake failed
    """
    if not isinstance(exc, httpx.ConnectError):
        return isinstance(exc, httpx.TransportError) and any(
            marker in str(exc).upper() for marker in _TLS_ALERT_MARKERS
        )

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLError):
            return True
        text = str(current).upper()
        if any(marker in text for marker in _TLS_ERROR_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def translate_transport_error(exc: httpx.TransportError) -> Exception:
    """Map a low-level transport failure to the client error taxonomy.

    Args:
        exc: The transport error raised by httpx

    Returns:
        A :class:`TLSHandshakeError` for TLS failures, otherwise ``exc``
        itself so the caller can re-raise it unchanged.
    """
    if is_tls_failure(exc):
        logger.warning(f"TLS handshake failed: {exc}")
        return TLSHandshakeError(f"TLS handshake failed: {exc}")
    return exc
