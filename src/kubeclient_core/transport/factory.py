"""Factories for authenticated httpx clients.

Example:
    ```python
    from kubeclient_core.config import load_kube_config
    from kubeclient_core.transport import create_client

    configuration = load_kube_config()
    with create_client(configuration) as client:
        response = client.get("/api/v1/namespaces/default/pods")
    ```
"""

import logging
from typing import Any

import httpx

from kubeclient_core.auth.authenticator import RequestAuthenticator
from kubeclient_core.config.configuration import ClientConfiguration
from kubeclient_core.transport.tls import build_ssl_context

logger = logging.getLogger(__name__)


def _client_options(configuration: ClientConfiguration) -> dict[str, Any]:
    return {
        "base_url": configuration.host,
        "verify": build_ssl_context(configuration),
        "auth": RequestAuthenticator(configuration.credential),
        "timeout": configuration.timeout,
    }


def create_client(
    configuration: ClientConfiguration,
    *,
    transport: httpx.BaseTransport | None = None,
    **kwargs: Any,
) -> httpx.Client:
    """Create a synchronous client for the configured API server.

    Args:
        configuration: The resolved configuration.
        transport: Replaces the network transport, e.g. ``httpx.MockTransport``.
        **kwargs: Passed to ``httpx.Client``.
    """
    options = _client_options(configuration)
    logger.debug(f"Creating client for {configuration.host}")
    return httpx.Client(transport=transport, **options, **kwargs)


def create_async_client(
    configuration: ClientConfiguration,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """Create an asynchronous client for the configured API server.

    Args:
        configuration: The resolved configuration.
        transport: Replaces the network transport, e.g. ``httpx.MockTransport``.
        **kwargs: Passed to ``httpx.AsyncClient``.
    """
    options = _client_options(configuration)
    logger.debug(f"Creating async client for {configuration.host}")
    return httpx.AsyncClient(transport=transport, **options, **kwargs)
