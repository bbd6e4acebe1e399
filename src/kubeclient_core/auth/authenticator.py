"""Per-request authentication for httpx clients."""

import asyncio
import logging
from collections.abc import AsyncGenerator, Generator

import httpx

from kubeclient_core.auth.exec_plugin import ExecCredentialProvider
from kubeclient_core.auth.oidc import OidcTokenProvider
from kubeclient_core.auth.providers import (
    Anonymous,
    BasicAuth,
    ClientCertificate,
    ResolvedCredential,
    StaticToken,
)

logger = logging.getLogger(__name__)

CredentialProvider = (
    Anonymous | BasicAuth | StaticToken | ClientCertificate | ExecCredentialProvider | OidcTokenProvider
)
"""The closed set of authentication mechanisms."""


class RequestAuthenticator(httpx.Auth):
    """Attach the active credential to every outgoing request.

    Header-based credentials set ``Authorization``; certificate-based ones
    add nothing here because the certificate is already part of the TLS
    connection. A 401 from the server is passed through untouched, there is
    no retry with refreshed credentials.

    In async clients a resolution that may block (running an exec plugin or
    calling the identity provider) is moved to a worker thread.

    Example:
        ```python
        auth = RequestAuthenticator(StaticToken("abc"))
        with httpx.Client(auth=auth) as client:
            client.get("https://cluster.example.com/api")
        ```
    """

    def __init__(self, provider: CredentialProvider) -> None:
        self.provider = provider

    def _apply(self, request: httpx.Request, credential: ResolvedCredential) -> None:
        if credential.authorization:
            request.headers["Authorization"] = credential.authorization

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        self._apply(request, self.provider.resolve())
        yield request

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        if self.provider.needs_refresh():
            logger.debug(f"Resolving {self.provider!r} in a worker thread")
            credential = await asyncio.to_thread(self.provider.resolve)
        else:
            credential = self.provider.resolve()
        self._apply(request, credential)
        yield request
