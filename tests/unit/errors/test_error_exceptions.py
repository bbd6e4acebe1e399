"""Tests for structured API exceptions."""

import pytest
from httpx import Response

from kubeclient_core.auth.exceptions import CredentialError
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
from kubeclient_core.errors.models import Status


@pytest.mark.unit
def test_api_error_instantiation():
    """Test APIError can be instantiated with all attributes."""
    response = Response(status_code=500)
    status = Status(status="Failure", message="boom", code=500)

    error = APIError(message="Test error", status_code=500, response=response, status=status)

    assert str(error) == "Test error"
    assert error.status_code == 500
    assert error.response == response
    assert error.status == status


@pytest.mark.unit
def test_exception_inheritance():
    """Test exception inheritance chain."""
    assert issubclass(APIError, KubeClientError)
    assert issubclass(ClientError, APIError)

    for error_class in (
        BadRequestError,
        UnauthorizedError,
        ForbiddenError,
        NotFoundError,
        ConflictError,
        UnprocessableEntityError,
        RateLimitError,
    ):
        assert issubclass(error_class, ClientError)

    assert issubclass(ServerError, APIError)


@pytest.mark.unit
def test_failure_categories_are_distinct():
    """Configuration, credential, TLS and HTTP failures can be told apart."""
    categories = [ConfigurationError, CredentialError, TLSHandshakeError, APIError]

    for category in categories:
        assert issubclass(category, KubeClientError)
        others = [other for other in categories if other is not category]
        assert not any(issubclass(category, other) for other in others)


@pytest.mark.unit
def test_rate_limit_error_with_retry_after():
    error = RateLimitError(message="Too many requests", retry_after=60, status_code=429)

    assert str(error) == "Too many requests"
    assert error.retry_after == 60
    assert error.status_code == 429


@pytest.mark.unit
def test_rate_limit_error_without_retry_after():
    assert RateLimitError(message="Too many requests").retry_after is None
