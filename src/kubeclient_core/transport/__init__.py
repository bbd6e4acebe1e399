"""Transport layer: TLS settings and authenticated httpx clients.

Modules:
    tls: SSL context construction (trust store, skip-verify, client certificates)
    factory: Factory functions for sync and async httpx clients

Example:
    ```python
    from kubeclient_core.transport import create_async_client

    async with create_async_client(configuration) as client:
        response = await client.get("/version")
    ```
"""

from kubeclient_core.transport.factory import create_async_client, create_client
from kubeclient_core.transport.tls import build_ssl_context, client_certificate_for, load_client_certificate

__all__ = [
    "build_ssl_context",
    "client_certificate_for",
    "create_async_client",
    "create_client",
    "load_client_certificate",
]
