"""Credential provider variants.

Every variant exposes the same two operations:

- ``resolve()`` returns a :class:`ResolvedCredential` (an ``Authorization``
  header value, a client certificate, or nothing at all).
- ``needs_refresh()`` tells whether the next ``resolve()`` may block on a
  process or network call.

The stateless variants live here. The exec plugin and OIDC variants keep
token state and are defined in :mod:`kubeclient_core.auth.exec_plugin` and
:mod:`kubeclient_core.auth.oidc`.

Example:
    ```python
    from kubeclient_core.auth.providers import BasicAuth

    credential = BasicAuth("admin", "secret").resolve()
    credential.authorization  # 'Basic YWRtaW46c2VjcmV0'
    ```
"""

import base64
import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import cached_property
from pathlib import Path
from threading import Lock
from typing import TypeVar

from kubeclient_core.auth.certificates import (
    CertificatePair,
    decode_pem_data,
    load_certificate_pair,
    load_pkcs12_pair,
)
from kubeclient_core.auth.credentials import CredentialResolver

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ResolvedCredential:
    """Material produced by one credential resolution.

    Attributes:
        authorization: Value for the ``Authorization`` header, if any.
        certificate: Client certificate for the TLS handshake, if any.
        expiry: When the credential stops being valid; None means no
            known expiry.
    """

    authorization: str | None = field(default=None, repr=False)
    certificate: CertificatePair | None = None
    expiry: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiry is None:
            return False
        return self.expiry <= (now or datetime.now(UTC))


class SingleFlight:
    """Collapse concurrent calls into a single in-flight execution.

    The first caller runs the function; callers arriving while it runs wait
    for it and receive the same result or exception.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._future: Future | None = None

    def do(self, fn: Callable[[], T]) -> T:
        with self._lock:
            future = self._future
            leader = future is None
            if leader:
                future = self._future = Future()

        if not leader:
            return future.result()

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._future = None


@dataclass(frozen=True)
class Anonymous:
    """No authentication. Requests carry neither header nor certificate."""

    def resolve(self) -> ResolvedCredential:
        return ResolvedCredential()

    def needs_refresh(self) -> bool:
        return False


@dataclass(frozen=True)
class BasicAuth:
    """HTTP basic authentication with a username and password."""

    username: str
    password: str = field(repr=False)

    def resolve(self) -> ResolvedCredential:
        raw = f"{self.username}:{self.password}".encode()
        return ResolvedCredential(authorization=f"Basic {base64.b64encode(raw).decode('ascii')}")

    def needs_refresh(self) -> bool:
        return False


@dataclass(frozen=True)
class StaticToken:
    """A bearer token with no expiry tracking."""

    token: str = field(repr=False)

    def resolve(self) -> ResolvedCredential:
        return ResolvedCredential(authorization=f"Bearer {self.token}")

    def needs_refresh(self) -> bool:
        return False


@dataclass(frozen=True)
class ClientCertificate:
    """Mutual TLS with a client certificate and private key.

    Material is either held in memory (PEM bytes) or read from files on
    first use. It is loaded and validated once; later resolutions return
    the same :class:`CertificatePair`.

    Use the ``from_*`` constructors rather than the fields directly.
    """

    certificate: bytes | None = field(default=None, repr=False)
    private_key: bytes | None = field(default=None, repr=False)
    certificate_file: Path | None = None
    key_file: Path | None = None

    @classmethod
    def from_pem(cls, certificate: str | bytes, private_key: str | bytes) -> "ClientCertificate":
        return cls(
            certificate=certificate.encode() if isinstance(certificate, str) else certificate,
            private_key=private_key.encode() if isinstance(private_key, str) else private_key,
        )

    @classmethod
    def from_base64(cls, certificate_data: str | bytes, key_data: str | bytes) -> "ClientCertificate":
        """Build from kubeconfig ``client-certificate-data``/``client-key-data``."""
        return cls(
            certificate=decode_pem_data(certificate_data, "client-certificate-data"),
            private_key=decode_pem_data(key_data, "client-key-data"),
        )

    @classmethod
    def from_files(cls, certificate_file: str | Path, key_file: str | Path) -> "ClientCertificate":
        return cls(certificate_file=Path(certificate_file), key_file=Path(key_file))

    @classmethod
    def from_pkcs12(cls, bundle: bytes, password: bytes | None = None) -> "ClientCertificate":
        """Build from a PKCS#12 bundle, keeping its whole certificate chain."""
        pair = load_pkcs12_pair(bundle, password)
        return cls(certificate=pair.certificate_pem, private_key=pair.private_key_pem)

    @cached_property
    def pair(self) -> CertificatePair:
        certificate, private_key = self.certificate, self.private_key
        if certificate is None or private_key is None:
            reader = CredentialResolver(load_dotenv=False)
            certificate = reader.read_bytes(self.certificate_file)
            private_key = reader.read_bytes(self.key_file)
        return load_certificate_pair(certificate, private_key)

    def resolve(self) -> ResolvedCredential:
        return ResolvedCredential(certificate=self.pair)

    def needs_refresh(self) -> bool:
        return False
