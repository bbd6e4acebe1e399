"""Kubeconfig file entities: clusters, users, and contexts.

Only the fields used for connecting and authenticating are read; anything
else in the file is ignored. Each entity remembers the directory of the
file it came from so relative paths can be resolved against it, also after
several files have been merged.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kubeclient_core.auth.exec_plugin import ExecConfig
from kubeclient_core.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _mapping(value: Any, where: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{where} must be a mapping")
    return value


def _named_entries(data: dict[str, Any], section: str, body_key: str) -> list[tuple[str, dict[str, Any]]]:
    entries = data.get(section) or []
    if not isinstance(entries, list):
        raise ConfigurationError(f"'{section}' must be a list")

    result = []
    for index, entry in enumerate(entries):
        entry = _mapping(entry, f"{section}[{index}]")
        name = entry.get("name")
        if not name or not isinstance(name, str):
            raise ConfigurationError(f"{section}[{index}] has no name")
        result.append((name, _mapping(entry.get(body_key), f"{section}[{name}].{body_key}")))
    return result


@dataclass(frozen=True)
class Cluster:
    name: str
    server: str | None = None
    certificate_authority_data: str | None = field(default=None, repr=False)
    certificate_authority: str | None = None
    insecure_skip_tls_verify: bool = False
    tls_server_name: str | None = None
    base_dir: Path | None = None

    @classmethod
    def from_dict(cls, name: str, body: dict[str, Any], base_dir: Path | None = None) -> "Cluster":
        return cls(
            name=name,
            server=body.get("server"),
            certificate_authority_data=body.get("certificate-authority-data"),
            certificate_authority=body.get("certificate-authority"),
            insecure_skip_tls_verify=bool(body.get("insecure-skip-tls-verify", False)),
            tls_server_name=body.get("tls-server-name"),
            base_dir=base_dir,
        )


@dataclass(frozen=True)
class AuthProviderConfig:
    """The ``auth-provider`` section of a user (only ``oidc`` is supported)."""

    name: str
    config: dict[str, str] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class User:
    name: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    token: str | None = field(default=None, repr=False)
    token_file: str | None = None
    client_certificate_data: str | None = field(default=None, repr=False)
    client_key_data: str | None = field(default=None, repr=False)
    client_certificate: str | None = None
    client_key: str | None = None
    exec: ExecConfig | None = None
    auth_provider: AuthProviderConfig | None = None
    base_dir: Path | None = None

    @classmethod
    def from_dict(cls, name: str, body: dict[str, Any], base_dir: Path | None = None) -> "User":
        exec_body = body.get("exec")
        provider_body = body.get("auth-provider")
        return cls(
            name=name,
            username=body.get("username"),
            password=body.get("password"),
            token=body.get("token"),
            token_file=body.get("tokenFile"),
            client_certificate_data=body.get("client-certificate-data"),
            client_key_data=body.get("client-key-data"),
            client_certificate=body.get("client-certificate"),
            client_key=body.get("client-key"),
            exec=_parse_exec(name, _mapping(exec_body, f"users[{name}].exec"), base_dir) if exec_body else None,
            auth_provider=_parse_auth_provider(name, provider_body) if provider_body else None,
            base_dir=base_dir,
        )


def _parse_exec(user: str, body: dict[str, Any], base_dir: Path | None) -> ExecConfig:
    command = body.get("command")
    if not command or not isinstance(command, str):
        raise ConfigurationError(f"User {user!r} has an exec section without a command")

    # client-go resolves relative commands containing a separator against the file
    if base_dir is not None and "/" in command and not Path(command).is_absolute():
        command = str(base_dir / command)

    env = {}
    for item in body.get("env") or []:
        item = _mapping(item, f"users[{user}].exec.env")
        if "name" not in item:
            raise ConfigurationError(f"User {user!r} has an exec env entry without a name")
        env[str(item["name"])] = "" if item.get("value") is None else str(item["value"])

    return ExecConfig(
        api_version=body.get("apiVersion") or "",
        command=command,
        args=tuple(str(arg) for arg in body.get("args") or []),
        env=env,
        install_hint=body.get("installHint"),
    )


def _parse_auth_provider(user: str, body: Any) -> AuthProviderConfig:
    body = _mapping(body, f"users[{user}].auth-provider")
    name = body.get("name")
    if not name:
        raise ConfigurationError(f"User {user!r} has an auth-provider without a name")
    config = _mapping(body.get("config"), f"users[{user}].auth-provider.config")
    return AuthProviderConfig(name=name, config={k: str(v) for k, v in config.items() if v is not None})


@dataclass(frozen=True)
class Context:
    name: str
    cluster: str
    user: str | None = None
    namespace: str | None = None

    @classmethod
    def from_dict(cls, name: str, body: dict[str, Any]) -> "Context":
        cluster = body.get("cluster")
        if not cluster:
            raise ConfigurationError(f"Context {name!r} does not reference a cluster")
        return cls(name=name, cluster=cluster, user=body.get("user") or None, namespace=body.get("namespace"))


@dataclass
class KubeConfig:
    """A parsed kubeconfig: named clusters, users, contexts and the current context."""

    clusters: dict[str, Cluster] = field(default_factory=dict)
    users: dict[str, User] = field(default_factory=dict)
    contexts: dict[str, Context] = field(default_factory=dict)
    current_context: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, base_dir: str | Path | None = None) -> "KubeConfig":
        """Build from the mapping structure of a kubeconfig file.

        Args:
            data: The loaded YAML document.
            base_dir: Directory relative paths in the document refer to.

        Raises:
            ConfigurationError: If the structure is invalid or names repeat.
        """
        data = _mapping(data, "kubeconfig")
        base = Path(base_dir) if base_dir is not None else None

        config = cls(current_context=data.get("current-context") or None)
        for name, body in _named_entries(data, "clusters", "cluster"):
            if name in config.clusters:
                raise ConfigurationError(f"Duplicate cluster name {name!r}")
            config.clusters[name] = Cluster.from_dict(name, body, base)
        for name, body in _named_entries(data, "users", "user"):
            if name in config.users:
                raise ConfigurationError(f"Duplicate user name {name!r}")
            config.users[name] = User.from_dict(name, body, base)
        for name, body in _named_entries(data, "contexts", "context"):
            if name in config.contexts:
                raise ConfigurationError(f"Duplicate context name {name!r}")
            config.contexts[name] = Context.from_dict(name, body)
        return config

    @classmethod
    def from_file(cls, path: str | Path) -> "KubeConfig":
        """Load a kubeconfig YAML file.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """
        path = Path(path)
        try:
            text = path.read_text()
        except OSError as e:
            raise ConfigurationError(f"Unable to read kubeconfig {path}: {e}") from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Kubeconfig {path} is not valid YAML: {e}") from e

        logger.debug(f"Loaded kubeconfig from {path}")
        return cls.from_dict(data, base_dir=path.resolve().parent)

    def merge(self, other: "KubeConfig") -> "KubeConfig":
        """Merge another kubeconfig into a new one; entries of ``self`` win."""
        return KubeConfig(
            clusters={**other.clusters, **self.clusters},
            users={**other.users, **self.users},
            contexts={**other.contexts, **self.contexts},
            current_context=self.current_context or other.current_context,
        )

    def get_context(self, name: str) -> Context:
        try:
            return self.contexts[name]
        except KeyError:
            raise ConfigurationError(f"Context {name!r} not found in kubeconfig") from None

    def get_cluster(self, name: str) -> Cluster:
        try:
            return self.clusters[name]
        except KeyError:
            raise ConfigurationError(f"Cluster {name!r} not found in kubeconfig") from None

    def get_user(self, name: str) -> User:
        try:
            return self.users[name]
        except KeyError:
            raise ConfigurationError(f"User {name!r} not found in kubeconfig") from None
