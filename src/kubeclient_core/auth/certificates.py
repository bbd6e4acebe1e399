"""Loading and validation of client certificate material.

Certificates and keys arrive in several shapes: base64-encoded PEM from a
kubeconfig ``*-data`` field, raw PEM from an exec plugin or a file, or a
PKCS#12 bundle. Everything is normalized to a :class:`CertificatePair`
holding the full PEM chain (leaf first) and an unencrypted PKCS#8 key.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from kubeclient_core.auth.exceptions import CredentialError

logger = logging.getLogger(__name__)

_PEM_MARKER = b"-----BEGIN"


@dataclass(frozen=True)
class CertificatePair:
    """A client certificate chain and its private key, both PEM encoded."""

    certificate_pem: bytes
    private_key_pem: bytes = field(repr=False)

    @property
    def leaf(self) -> x509.Certificate:
        """The certificate presented as the client's identity."""
        return x509.load_pem_x509_certificates(self.certificate_pem)[0]

    @property
    def chain_length(self) -> int:
        return len(x509.load_pem_x509_certificates(self.certificate_pem))


def decode_pem_data(data: str | bytes, what: str) -> bytes:
    """Decode a kubeconfig ``*-data`` field into PEM bytes.

    The field normally holds base64-encoded PEM; raw PEM is accepted too.

    Args:
        data: The field value.
        what: Name of the field, used in error messages.

    Returns:
        PEM bytes.

    Raises:
        CredentialError: If the value is neither PEM nor valid base64.
    """
    raw = data.encode("utf-8") if isinstance(data, str) else data
    if raw.lstrip().startswith(_PEM_MARKER):
        return raw
    try:
        return base64.b64decode(b"".join(raw.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialError(f"{what} is not valid base64: {e}") from e


def _public_key_bytes(key) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _build_pair(chain: list[x509.Certificate], private_key) -> CertificatePair:
    leaf = chain[0]
    if _public_key_bytes(leaf.public_key()) != _public_key_bytes(private_key.public_key()):
        raise CredentialError(f"Client key does not match client certificate (subject {leaf.subject.rfc4514_string()})")

    certificate_pem = b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in chain)
    private_key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    logger.debug(f"Loaded client certificate {leaf.subject.rfc4514_string()} with chain of {len(chain)}")
    return CertificatePair(certificate_pem=certificate_pem, private_key_pem=private_key_pem)


def load_certificate_pair(certificate: bytes, private_key: bytes, password: bytes | None = None) -> CertificatePair:
    """Parse and validate a PEM certificate chain and private key.

    Args:
        certificate: One or more PEM certificates, leaf first.
        private_key: PEM private key (PKCS#1, PKCS#8 or SEC1).
        password: Password for an encrypted private key.

    Returns:
        The validated pair, with every certificate of the chain kept.

    Raises:
        CredentialError: If either part is malformed or the key does not
            belong to the leaf certificate.
    """
    try:
        chain = x509.load_pem_x509_certificates(certificate)
    except ValueError as e:
        raise CredentialError(f"Client certificate is malformed: {e}") from e

    try:
        key = serialization.load_pem_private_key(private_key, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialError(f"Client key is malformed: {e}") from e

    return _build_pair(chain, key)


def load_pkcs12_pair(bundle: bytes, password: bytes | None = None) -> CertificatePair:
    """Convert a PKCS#12 bundle into a PEM :class:`CertificatePair`.

    The additional certificates of the bundle are appended after the leaf
    so servers that validate the chain receive all of it.

    Raises:
        CredentialError: If the bundle cannot be read or has no key or
            certificate.
    """
    try:
        key, leaf, additional = pkcs12.load_key_and_certificates(bundle, password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CredentialError(f"Client certificate bundle is malformed: {e}") from e

    if key is None or leaf is None:
        raise CredentialError("Client certificate bundle must contain a certificate and its private key")

    return _build_pair([leaf, *additional], key)
