"""The resolved, immutable connection configuration."""

from dataclasses import dataclass, field
from pathlib import Path

from kubeclient_core.auth.authenticator import CredentialProvider
from kubeclient_core.auth.providers import Anonymous, BasicAuth, ClientCertificate, StaticToken
from kubeclient_core.errors.exceptions import ConfigurationError

DEFAULT_NAMESPACE = "default"

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class ClientConfiguration:
    """Everything needed to connect and authenticate to one API server.

    Attributes:
        host: API server URL (``https://...``).
        credential: The single active credential variant.
        ca_cert_data: PEM CA bundle trusted for the server certificate.
        ca_cert_file: Path of a PEM CA bundle, alternative to ca_cert_data.
        skip_tls_verify: Disable server certificate verification. Insecure.
        tls_server_name: Name to send as SNI and verify the certificate
            against, instead of the host name of ``host``.
        namespace: Default namespace of the selected context.
        timeout: Timeout in seconds for API requests.
    """

    host: str
    credential: CredentialProvider = field(default_factory=Anonymous)
    ca_cert_data: bytes | None = field(default=None, repr=False)
    ca_cert_file: Path | None = None
    skip_tls_verify: bool = False
    tls_server_name: str | None = None
    namespace: str = DEFAULT_NAMESPACE
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationError("Server host must not be empty")
        if not self.host.startswith(("https://", "http://")):
            raise ConfigurationError(f"Server host {self.host!r} must start with https:// or http://")
        object.__setattr__(self, "host", self.host.rstrip("/"))

    @property
    def username(self) -> str | None:
        return self.credential.username if isinstance(self.credential, BasicAuth) else None

    @property
    def password(self) -> str | None:
        return self.credential.password if isinstance(self.credential, BasicAuth) else None

    @property
    def token(self) -> str | None:
        return self.credential.token if isinstance(self.credential, StaticToken) else None

    @property
    def client_certificate_data(self) -> bytes | None:
        return self.credential.certificate if isinstance(self.credential, ClientCertificate) else None

    @property
    def client_key_data(self) -> bytes | None:
        return self.credential.private_key if isinstance(self.credential, ClientCertificate) else None

    @property
    def client_certificate_file(self) -> Path | None:
        return self.credential.certificate_file if isinstance(self.credential, ClientCertificate) else None

    @property
    def client_key_file(self) -> Path | None:
        return self.credential.key_file if isinstance(self.credential, ClientCertificate) else None
