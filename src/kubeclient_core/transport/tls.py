"""TLS settings for API server connections.

Builds one ``ssl.SSLContext`` per configuration:

| Configuration | Server verification |
|---------------|---------------------|
| ``skip_tls_verify=True`` | none (insecure, logged as a warning) |
| ``ca_cert_data`` / ``ca_cert_file`` | against the given CA bundle only |
| neither | against the platform trust store |

When the active credential carries a client certificate (a
``ClientCertificate``, or an exec plugin answering with certificate data),
the full chain and key are loaded into the context and presented during
the handshake. The context is not modified afterwards.
"""

import logging
import os
import ssl
import tempfile
from pathlib import Path

from kubeclient_core.auth.authenticator import CredentialProvider
from kubeclient_core.auth.certificates import CertificatePair
from kubeclient_core.auth.exceptions import CredentialError, CredentialFileError
from kubeclient_core.auth.exec_plugin import ExecCredentialProvider
from kubeclient_core.auth.providers import ClientCertificate
from kubeclient_core.config.configuration import ClientConfiguration

logger = logging.getLogger(__name__)


def client_certificate_for(credential: CredentialProvider) -> CertificatePair | None:
    """Return the certificate to present in the handshake, if any.

    Exec plugins are run here so that certificate answers reach the TLS
    layer; this is the first plugin invocation for a configuration.
    """
    if isinstance(credential, (ClientCertificate, ExecCredentialProvider)):
        return credential.resolve().certificate
    return None


def load_client_certificate(context: ssl.SSLContext, pair: CertificatePair) -> None:
    """Load a certificate chain and key into an SSL context.

    ``ssl`` only reads certificate chains from files, so the PEM material
    is written to a private temporary directory for the duration of the
    call.

    Raises:
        CredentialError: If OpenSSL rejects the material.
    """
    with tempfile.TemporaryDirectory(prefix="kubeclient-") as tmp:
        cert_path = Path(tmp) / "client.crt"
        key_path = Path(tmp) / "client.key"
        for path, data in ((cert_path, pair.certificate_pem), (key_path, pair.private_key_pem)):
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
        try:
            context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        except ssl.SSLError as e:
            raise CredentialError(f"Client certificate could not be loaded: {e}") from e


def build_ssl_context(configuration: ClientConfiguration) -> ssl.SSLContext:
    """Create the SSL context for connections to ``configuration.host``.

    Raises:
        CredentialError: If CA or client certificate material is malformed.
        CredentialFileError: If a CA file cannot be read.
        ExecPluginError: If an exec plugin fails while fetching a client
            certificate.
    """
    if configuration.skip_tls_verify:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.warning(
            f"TLS certificate verification is disabled for {configuration.host}. "
            "This is insecure and intended for development and testing only."
        )
    elif configuration.ca_cert_data or configuration.ca_cert_file:
        try:
            context = ssl.create_default_context(
                cafile=str(configuration.ca_cert_file) if configuration.ca_cert_file else None,
                cadata=configuration.ca_cert_data.decode("utf-8") if configuration.ca_cert_data else None,
            )
        except OSError as e:
            if isinstance(e, ssl.SSLError):
                raise CredentialError(f"Certificate authority data is malformed: {e}") from e
            raise CredentialFileError(
                f"Unable to read certificate authority file {configuration.ca_cert_file}: {e}"
            ) from e
        except UnicodeDecodeError as e:
            raise CredentialError(f"Certificate authority data is not PEM text: {e}") from e
        logger.debug(f"Trusting custom certificate authority for {configuration.host}")
    else:
        context = ssl.create_default_context()

    pair = client_certificate_for(configuration.credential)
    if pair is not None:
        load_client_certificate(context, pair)
        logger.debug(f"Presenting client certificate {pair.leaf.subject.rfc4514_string()} to {configuration.host}")

    return context
