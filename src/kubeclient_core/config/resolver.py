"""Resolution of kubeconfig files and inline settings into a ClientConfiguration.

Sources:
1. A kubeconfig file (explicit path, ``KUBECONFIG``, or ``~/.kube/config``)
2. Inline host and credential fields
3. The in-cluster service account of a pod

Exactly one credential variant is chosen per configuration. For a kubeconfig
user the precedence is: ``exec`` > ``auth-provider`` (oidc) > ``token`` /
``tokenFile`` > ``username`` + ``password`` > client certificate >
anonymous.

Resolution never runs an exec plugin; the plugin is first invoked when a
client (and its TLS transport) is built from the configuration.

Example:
    ```python
    from kubeclient_core.config import load_kube_config

    configuration = load_kube_config(context="staging")
    ```
"""

import logging
import os
from pathlib import Path

from kubeclient_core.auth.authenticator import CredentialProvider
from kubeclient_core.auth.certificates import decode_pem_data
from kubeclient_core.auth.credentials import CredentialResolver, expand_path
from kubeclient_core.auth.exceptions import CredentialFileError, CredentialNotFoundError
from kubeclient_core.auth.exec_plugin import ExecCredentialProvider
from kubeclient_core.auth.oidc import OidcTokenProvider
from kubeclient_core.auth.providers import Anonymous, BasicAuth, ClientCertificate, StaticToken
from kubeclient_core.config.configuration import DEFAULT_NAMESPACE, DEFAULT_TIMEOUT, ClientConfiguration
from kubeclient_core.config.kubeconfig import KubeConfig, User
from kubeclient_core.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

KUBECONFIG_ENV_VAR = "KUBECONFIG"
DEFAULT_KUBECONFIG_PATH = "~/.kube/config"

SERVICE_HOST_ENV_VAR = "KUBERNETES_SERVICE_HOST"
SERVICE_PORT_ENV_VAR = "KUBERNETES_SERVICE_PORT"
SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


def _oidc_provider(user: User) -> OidcTokenProvider:
    config = user.auth_provider.config
    missing = [key for key in ("client-id", "idp-issuer-url") if not config.get(key)]
    if missing:
        raise ConfigurationError(f"User {user.name!r} oidc auth-provider is missing {', '.join(missing)}")

    idp_ca = config.get("idp-certificate-authority-data")
    return OidcTokenProvider(
        client_id=config["client-id"],
        client_secret=config.get("client-secret"),
        issuer_url=config["idp-issuer-url"],
        id_token=config.get("id-token"),
        refresh_token=config.get("refresh-token"),
        idp_ca_data=decode_pem_data(idp_ca, "idp-certificate-authority-data") if idp_ca else None,
    )


def credential_for_user(user: User | None) -> CredentialProvider:
    """Choose the credential variant for a kubeconfig user.

    Raises:
        ConfigurationError: For an unsupported auth-provider or a client
            certificate without its key (or the reverse).
        CredentialFileError: If ``tokenFile`` cannot be read.
    """
    if user is None:
        return Anonymous()

    if user.exec is not None:
        return ExecCredentialProvider(user.exec)

    if user.auth_provider is not None:
        if user.auth_provider.name != "oidc":
            raise ConfigurationError(
                f"User {user.name!r} uses unsupported auth-provider {user.auth_provider.name!r}"
            )
        return _oidc_provider(user)

    if user.token:
        return StaticToken(user.token)

    if user.token_file:
        reader = CredentialResolver(load_dotenv=False)
        token_file = expand_path(user.token_file, user.base_dir)
        return StaticToken(reader.resolve_from_file(file_path=token_file, required=True))

    if user.username and user.password:
        return BasicAuth(user.username, user.password)

    if bool(user.client_certificate_data) != bool(user.client_key_data) or bool(user.client_certificate) != bool(
        user.client_key
    ):
        raise ConfigurationError(f"User {user.name!r} needs both a client certificate and a client key")

    if user.client_certificate_data and user.client_key_data:
        return ClientCertificate.from_base64(user.client_certificate_data, user.client_key_data)

    if user.client_certificate and user.client_key:
        return ClientCertificate.from_files(
            expand_path(user.client_certificate, user.base_dir),
            expand_path(user.client_key, user.base_dir),
        )

    if user.username:
        logger.warning(f"User {user.name!r} has a username but no password; connecting anonymously")
    else:
        logger.debug(f"User {user.name!r} has no credentials; connecting anonymously")
    return Anonymous()


def build_config_from_kubeconfig(
    kubeconfig: KubeConfig,
    context: str | None = None,
    server: str | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ClientConfiguration:
    """Resolve one context of a parsed kubeconfig.

    Args:
        kubeconfig: The parsed kubeconfig.
        context: Context name; defaults to the kubeconfig's current-context.
        server: Overrides the server address of the selected cluster.
        timeout: Request timeout for clients built from the result.

    Raises:
        ConfigurationError: If no context is selected, a referenced
            context, cluster or user does not exist, or no server is known.
    """
    context_name = context or kubeconfig.current_context
    if not context_name:
        raise ConfigurationError("No context given and the kubeconfig has no current-context")

    selected = kubeconfig.get_context(context_name)
    cluster = kubeconfig.get_cluster(selected.cluster)
    user = kubeconfig.get_user(selected.user) if selected.user else None

    host = server or cluster.server
    if not host:
        raise ConfigurationError(f"Cluster {cluster.name!r} has no server address")

    ca_cert_data = None
    if cluster.certificate_authority_data:
        ca_cert_data = decode_pem_data(cluster.certificate_authority_data, "certificate-authority-data")
    ca_cert_file = None
    if cluster.certificate_authority:
        ca_cert_file = expand_path(cluster.certificate_authority, cluster.base_dir)

    credential = credential_for_user(user)
    logger.debug(f"Resolved context {context_name!r}: server {host}, credential {type(credential).__name__}")

    return ClientConfiguration(
        host=host,
        credential=credential,
        ca_cert_data=ca_cert_data,
        ca_cert_file=ca_cert_file,
        skip_tls_verify=cluster.insecure_skip_tls_verify,
        tls_server_name=cluster.tls_server_name,
        namespace=selected.namespace or DEFAULT_NAMESPACE,
        timeout=timeout,
    )


def kubeconfig_paths(config_file: str | Path | None = None, resolver: CredentialResolver | None = None) -> list[Path]:
    """List the kubeconfig files to load, in priority order."""
    if config_file is not None:
        return [expand_path(config_file)]

    resolver = resolver or CredentialResolver()
    env_value = resolver.resolve(env_var_name=KUBECONFIG_ENV_VAR, mask_in_logs=False)
    if env_value:
        paths = [expand_path(part) for part in env_value.split(os.pathsep) if part]
        if paths:
            return paths
    return [expand_path(DEFAULT_KUBECONFIG_PATH)]


def load_kube_config(
    config_file: str | Path | None = None,
    context: str | None = None,
    server: str | None = None,
    *,
    resolver: CredentialResolver | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ClientConfiguration:
    """Load kubeconfig file(s) and resolve one context.

    When ``KUBECONFIG`` lists several files they are merged: the first file
    defining a name wins, as does the first non-empty current-context.
    Missing files in such a list are skipped.

    Raises:
        ConfigurationError: If no file can be loaded or resolution fails.
    """
    paths = kubeconfig_paths(config_file, resolver)

    merged: KubeConfig | None = None
    for path in paths:
        if len(paths) > 1 and not path.exists():
            logger.debug(f"Skipping missing kubeconfig {path}")
            continue
        loaded = KubeConfig.from_file(path)
        merged = loaded if merged is None else merged.merge(loaded)

    if merged is None:
        raise ConfigurationError(f"No kubeconfig found in {', '.join(str(p) for p in paths)}")

    return build_config_from_kubeconfig(merged, context=context, server=server, timeout=timeout)


def build_configuration(
    host: str,
    *,
    username: str | None = None,
    password: str | None = None,
    token: str | None = None,
    client_certificate_data: str | bytes | None = None,
    client_key_data: str | bytes | None = None,
    client_certificate_file: str | Path | None = None,
    client_key_file: str | Path | None = None,
    ca_cert_data: str | bytes | None = None,
    ca_cert_file: str | Path | None = None,
    skip_tls_verify: bool = False,
    tls_server_name: str | None = None,
    credential: CredentialProvider | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    timeout: float = DEFAULT_TIMEOUT,
) -> ClientConfiguration:
    """Build a configuration from inline settings.

    An explicit ``credential`` wins over the individual fields; otherwise
    the precedence is token > username + password > client certificate.
    Certificate and CA data accept base64-encoded or raw PEM.

    Raises:
        ConfigurationError: If the host is invalid or a certificate is
            given without its key.
        CredentialError: If certificate data is not valid base64.
    """
    if credential is None:
        credential = _inline_credential(
            username=username,
            password=password,
            token=token,
            client_certificate_data=client_certificate_data,
            client_key_data=client_key_data,
            client_certificate_file=client_certificate_file,
            client_key_file=client_key_file,
        )

    return ClientConfiguration(
        host=host,
        credential=credential,
        ca_cert_data=decode_pem_data(ca_cert_data, "ca_cert_data") if ca_cert_data else None,
        ca_cert_file=expand_path(ca_cert_file) if ca_cert_file else None,
        skip_tls_verify=skip_tls_verify,
        tls_server_name=tls_server_name,
        namespace=namespace,
        timeout=timeout,
    )


def _inline_credential(
    *,
    username,
    password,
    token,
    client_certificate_data,
    client_key_data,
    client_certificate_file,
    client_key_file,
) -> CredentialProvider:
    if token:
        return StaticToken(token)
    if username and password:
        return BasicAuth(username, password)
    if bool(client_certificate_data) != bool(client_key_data) or bool(client_certificate_file) != bool(
        client_key_file
    ):
        raise ConfigurationError("A client certificate needs a client key")
    if client_certificate_data and client_key_data:
        return ClientCertificate.from_base64(client_certificate_data, client_key_data)
    if client_certificate_file and client_key_file:
        return ClientCertificate.from_files(expand_path(client_certificate_file), expand_path(client_key_file))
    if username or password:
        logger.warning("Basic auth needs both a username and a password; connecting anonymously")
    return Anonymous()


def in_cluster_config(
    *,
    resolver: CredentialResolver | None = None,
    service_account_dir: str | Path | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> ClientConfiguration:
    """Build a configuration from the service account mounted into a pod.

    Raises:
        ConfigurationError: If the service environment variables or the
            token file are missing.
    """
    resolver = resolver or CredentialResolver()
    account_dir = Path(service_account_dir or SERVICE_ACCOUNT_DIR)

    try:
        host = resolver.resolve(env_var_name=SERVICE_HOST_ENV_VAR, required=True, mask_in_logs=False)
        port = resolver.resolve(env_var_name=SERVICE_PORT_ENV_VAR, required=True, mask_in_logs=False)
        token = resolver.resolve_from_file(file_path=account_dir / "token", required=True)
    except (CredentialNotFoundError, CredentialFileError) as e:
        raise ConfigurationError(f"Unable to load in-cluster configuration: {e}") from e

    if ":" in host and not host.startswith("["):
        host = f"[{host}]"

    ca_file = account_dir / "ca.crt"
    namespace = resolver.resolve_from_file(file_path=account_dir / "namespace") or DEFAULT_NAMESPACE

    return ClientConfiguration(
        host=f"https://{host}:{port}",
        credential=StaticToken(token),
        ca_cert_file=ca_file if ca_file.exists() else None,
        namespace=namespace,
        timeout=timeout,
    )
