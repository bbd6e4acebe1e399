"""Cluster API clients.

The clients own one authenticated httpx client each and translate every
failure into the library's exception taxonomy: non-2xx responses through
:func:`~kubeclient_core.errors.raise_for_status`, TLS handshake failures
into :class:`~kubeclient_core.errors.TLSHandshakeError`. Resource-specific
operations are built on top of :meth:`KubernetesClient.request`.

Example:
    ```python
    from kubeclient_core.client import KubernetesClient

    with KubernetesClient.from_kubeconfig(context="staging") as client:
        pods = client.get("/api/v1/namespaces/default/pods").json()
    ```
"""

import logging
from pathlib import Path
from typing import Any

import httpx

from kubeclient_core.config.configuration import ClientConfiguration
from kubeclient_core.config.resolver import in_cluster_config, load_kube_config
from kubeclient_core.errors.handler import raise_for_status, translate_transport_error
from kubeclient_core.transport.factory import create_async_client, create_client

logger = logging.getLogger(__name__)


def _request_extensions(configuration: ClientConfiguration, extensions: dict[str, Any] | None) -> dict[str, Any]:
    merged = dict(extensions or {})
    if configuration.tls_server_name:
        merged.setdefault("sni_hostname", configuration.tls_server_name)
    return merged


class KubernetesClient:
    """Synchronous client for one API server.

    Building the client builds its TLS transport, which runs an exec
    credential plugin when the configuration uses one.

    Args:
        configuration: The resolved configuration.
        transport: Replaces the network transport, mainly for tests.
    """

    def __init__(self, configuration: ClientConfiguration, *, transport: httpx.BaseTransport | None = None):
        self.configuration = configuration
        self._client = create_client(configuration, transport=transport)

    @classmethod
    def from_kubeconfig(
        cls,
        config_file: str | Path | None = None,
        context: str | None = None,
        **kwargs: Any,
    ) -> "KubernetesClient":
        return cls(load_kube_config(config_file, context=context), **kwargs)

    @classmethod
    def in_cluster(cls, **kwargs: Any) -> "KubernetesClient":
        return cls(in_cluster_config(), **kwargs)

    def request(
        self, method: str, path: str, *, extensions: dict[str, Any] | None = None, **kwargs: Any
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Raises:
            UnauthorizedError: If the server answers 401.
            APIError: For any other non-2xx response.
            TLSHandshakeError: If the TLS handshake fails.
            ExecPluginError, CredentialRefreshError: If credentials cannot
                be obtained for the request.
        """
        try:
            response = self._client.request(
                method, path, extensions=_request_extensions(self.configuration, extensions), **kwargs
            )
        except httpx.TransportError as e:
            translated = translate_transport_error(e)
            if translated is e:
                raise
            logger.debug(f"TLS handshake with {self.configuration.host} failed: {e}")
            raise translated from e

        raise_for_status(response)
        return response

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "KubernetesClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class AsyncKubernetesClient:
    """Asynchronous client for one API server.

    Args:
        configuration: The resolved configuration.
        transport: Replaces the network transport, mainly for tests.
    """

    def __init__(self, configuration: ClientConfiguration, *, transport: httpx.AsyncBaseTransport | None = None):
        self.configuration = configuration
        self._client = create_async_client(configuration, transport=transport)

    @classmethod
    def from_kubeconfig(
        cls,
        config_file: str | Path | None = None,
        context: str | None = None,
        **kwargs: Any,
    ) -> "AsyncKubernetesClient":
        return cls(load_kube_config(config_file, context=context), **kwargs)

    async def request(
        self, method: str, path: str, *, extensions: dict[str, Any] | None = None, **kwargs: Any
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Raises the same exceptions as :meth:`KubernetesClient.request`.
        """
        try:
            response = await self._client.request(
                method, path, extensions=_request_extensions(self.configuration, extensions), **kwargs
            )
        except httpx.TransportError as e:
            translated = translate_transport_error(e)
            if translated is e:
                raise
            logger.debug(f"TLS handshake with {self.configuration.host} failed: {e}")
            raise translated from e

        raise_for_status(response)
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncKubernetesClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
