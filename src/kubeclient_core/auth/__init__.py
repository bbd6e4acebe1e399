"""Authentication components for cluster API clients.

This module provides:
- Credential provider variants (anonymous, basic, static token, client
  certificate, exec plugin, OIDC)
- An ``httpx.Auth`` implementation applying the active variant per request
- Environment and file lookups for credentials

Example:
    ```python
    from kubeclient_core.auth import RequestAuthenticator, StaticToken

    auth = RequestAuthenticator(StaticToken("my-token"))
    ```
"""

from kubeclient_core.auth.authenticator import CredentialProvider, RequestAuthenticator
from kubeclient_core.auth.certificates import CertificatePair, load_certificate_pair, load_pkcs12_pair
from kubeclient_core.auth.credentials import CredentialResolver
from kubeclient_core.auth.exceptions import (
    OIDC_REFRESH_ERROR_PREFIX,
    CredentialError,
    CredentialFileError,
    CredentialNotFoundError,
    CredentialRefreshError,
    ExecPluginError,
)
from kubeclient_core.auth.exec_plugin import (
    ExecConfig,
    ExecCredentialProvider,
    ExecCredentialResponse,
    ExecPluginRunner,
    ProcessInvoker,
    SubprocessInvoker,
    parse_exec_credential,
)
from kubeclient_core.auth.oidc import OidcState, OidcTokenProvider, TokenState
from kubeclient_core.auth.providers import (
    Anonymous,
    BasicAuth,
    ClientCertificate,
    ResolvedCredential,
    SingleFlight,
    StaticToken,
)

__all__ = [
    "OIDC_REFRESH_ERROR_PREFIX",
    "Anonymous",
    "BasicAuth",
    "CertificatePair",
    "ClientCertificate",
    "CredentialError",
    "CredentialFileError",
    "CredentialNotFoundError",
    "CredentialProvider",
    "CredentialRefreshError",
    "CredentialResolver",
    "ExecConfig",
    "ExecCredentialProvider",
    "ExecCredentialResponse",
    "ExecPluginError",
    "ExecPluginRunner",
    "OidcState",
    "OidcTokenProvider",
    "ProcessInvoker",
    "RequestAuthenticator",
    "ResolvedCredential",
    "SingleFlight",
    "StaticToken",
    "SubprocessInvoker",
    "TokenState",
    "load_certificate_pair",
    "load_pkcs12_pair",
    "parse_exec_credential",
]
