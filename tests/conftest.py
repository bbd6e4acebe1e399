"""Pytest configuration and shared fixtures for kubeclient-core tests."""

import base64
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from ipaddress import IPv4Address
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    """Auto-cleanup: Clear cluster-related environment variables before each test.

    Keeps a developer's own kubeconfig or in-cluster settings out of the tests.
    """
    import os

    test_prefixes = ("TEST_", "KUBERNETES_", "KUBECONFIG")

    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in test_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield


def _pem(cert: x509.Certificate) -> bytes:
    return cert.public_bytes(serialization.Encoding.PEM)


def _key_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def _issue(common_name, key, issuer=None, issuer_key=None, *, ca=False, usage=None, san=None):
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer is not None else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    if issuer_key is not None:
        builder = builder.add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()), critical=False
        )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    if usage is not None:
        builder = builder.add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
    if san is not None:
        builder = builder.add_extension(x509.SubjectAlternativeName(san), critical=False)
    return builder.sign(issuer_key if issuer_key is not None else key, hashes.SHA256())


@dataclass
class Pki:
    """Certificates for mTLS tests, all PEM encoded.

    ``client`` is issued by ``intermediate``, which is issued by ``root``;
    ``client_chain`` is the leaf followed by the intermediate. ``rogue`` is
    self-signed and trusted by nobody.
    """

    root_ca: bytes
    server_cert: bytes
    server_key: bytes
    client_cert: bytes
    client_key: bytes
    client_chain: bytes
    rogue_cert: bytes
    rogue_key: bytes
    directory: Path

    def b64(self, data: bytes) -> str:
        return base64.b64encode(data).decode("ascii")

    def path(self, name: str) -> Path:
        return self.directory / name


@pytest.fixture(scope="session")
def pki(tmp_path_factory) -> Pki:
    """A root CA, intermediate CA, server and client certificates."""
    root_key = ec.generate_private_key(ec.SECP256R1())
    root = _issue("test-root-ca", root_key, ca=True)

    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    intermediate = _issue("test-intermediate-ca", intermediate_key, root, root_key, ca=True)

    server_key = ec.generate_private_key(ec.SECP256R1())
    server = _issue(
        "test-apiserver",
        server_key,
        root,
        root_key,
        usage=ExtendedKeyUsageOID.SERVER_AUTH,
        san=[x509.DNSName("localhost"), x509.IPAddress(IPv4Address("127.0.0.1"))],
    )

    client_key = ec.generate_private_key(ec.SECP256R1())
    client = _issue("test-client", client_key, intermediate, intermediate_key, usage=ExtendedKeyUsageOID.CLIENT_AUTH)

    rogue_key = ec.generate_private_key(ec.SECP256R1())
    rogue = _issue("rogue-client", rogue_key, usage=ExtendedKeyUsageOID.CLIENT_AUTH)

    directory = tmp_path_factory.mktemp("pki")
    pki = Pki(
        root_ca=_pem(root),
        server_cert=_pem(server),
        server_key=_key_pem(server_key),
        client_cert=_pem(client),
        client_key=_key_pem(client_key),
        client_chain=_pem(client) + _pem(intermediate),
        rogue_cert=_pem(rogue),
        rogue_key=_key_pem(rogue_key),
        directory=directory,
    )
    files = {
        "ca.crt": pki.root_ca,
        "server.crt": pki.server_cert,
        "server.key": pki.server_key,
        "client.crt": pki.client_chain,
        "client.key": pki.client_key,
        "rogue.crt": pki.rogue_cert,
        "rogue.key": pki.rogue_key,
    }
    for name, data in files.items():
        (directory / name).write_bytes(data)
    return pki
