"""External exec credential plugins.

An exec plugin is a command (``aws eks get-token``, ``gke-gcloud-auth-plugin``,
...) that prints an ``ExecCredential`` JSON object on standard output:

```json
{
  "apiVersion": "client.authentication.k8s.io/v1",
  "kind": "ExecCredential",
  "status": {
    "token": "<opaque>",
    "expirationTimestamp": "2030-01-01T00:00:00Z"
  }
}
```

``status`` carries either a ``token`` or a ``clientCertificateData`` and
``clientKeyData`` PEM pair. Process spawning sits behind the narrow
:class:`ProcessInvoker` protocol so tests can substitute a stub.

Example:
    ```python
    from kubeclient_core.auth.exec_plugin import ExecConfig, ExecCredentialProvider

    provider = ExecCredentialProvider(
        ExecConfig(
            api_version="client.authentication.k8s.io/v1",
            command="aws",
            args=("eks", "get-token", "--cluster-name", "prod"),
        )
    )
    provider.resolve().authorization  # 'Bearer k8s-aws-v1...'
    ```
"""

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from kubeclient_core.auth.certificates import load_certificate_pair
from kubeclient_core.auth.exceptions import ExecPluginError
from kubeclient_core.auth.providers import ResolvedCredential, SingleFlight

logger = logging.getLogger(__name__)

EXEC_INFO_ENV_VAR = "KUBERNETES_EXEC_INFO"

DEFAULT_EXEC_TIMEOUT = 60.0

# Plugins print a few KiB at most
MAX_OUTPUT_BYTES = 1024 * 1024

READ_CHUNK_BYTES = 64 * 1024
READER_JOIN_TIMEOUT = 5.0


@dataclass(frozen=True)
class ExecConfig:
    """The ``exec`` section of a kubeconfig user."""

    api_version: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    install_hint: str | None = None


@dataclass(frozen=True)
class ExecCredentialResponse:
    """The parsed output of an exec plugin."""

    api_version: str
    token: str | None = field(default=None, repr=False)
    client_certificate_data: str | None = field(default=None, repr=False)
    client_key_data: str | None = field(default=None, repr=False)
    expiration_timestamp: datetime | None = None

    def to_credential(self) -> ResolvedCredential:
        """Map the response to a bearer token or a client certificate.

        Raises:
            CredentialError: If the returned certificate or key is malformed.
        """
        if self.token:
            return ResolvedCredential(authorization=f"Bearer {self.token}", expiry=self.expiration_timestamp)

        pair = load_certificate_pair(
            self.client_certificate_data.encode("utf-8"),
            self.client_key_data.encode("utf-8"),
        )
        return ResolvedCredential(certificate=pair, expiry=self.expiration_timestamp)


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_exec_credential(output: bytes, expected_api_version: str | None = None) -> ExecCredentialResponse:
    """Parse and validate the standard output of an exec plugin.

    Args:
        output: Raw standard output.
        expected_api_version: The ``apiVersion`` configured for the plugin;
            the response must report the same one.

    Returns:
        The parsed response.

    Raises:
        ExecPluginError: If the output is not an ``ExecCredential`` carrying
            a token or a certificate/key pair.
    """
    try:
        data = json.loads(output)
    except (ValueError, UnicodeDecodeError) as e:
        raise ExecPluginError(f"Exec plugin output is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExecPluginError("Exec plugin output must be a JSON object")

    api_version = data.get("apiVersion")
    if expected_api_version and api_version != expected_api_version:
        raise ExecPluginError(
            f"Exec plugin returned api version {api_version!r}, which does not match {expected_api_version!r}"
        )

    status = data.get("status")
    if not isinstance(status, dict):
        raise ExecPluginError("Exec plugin output is missing the 'status' object")

    token = status.get("token")
    cert_data = status.get("clientCertificateData")
    key_data = status.get("clientKeyData")

    if not token and not (cert_data and key_data):
        raise ExecPluginError("Exec plugin output is missing 'token' or 'clientCertificateData'/'clientKeyData'")
    for name, value in (("token", token), ("clientCertificateData", cert_data), ("clientKeyData", key_data)):
        if value is not None and not isinstance(value, str):
            raise ExecPluginError(f"Exec plugin field '{name}' must be a string")

    raw_expiry = status.get("expirationTimestamp", data.get("expirationTimestamp"))
    expiry = None
    if raw_expiry is not None:
        try:
            expiry = _parse_timestamp(raw_expiry)
        except ValueError as e:
            raise ExecPluginError(f"Exec plugin returned an invalid expirationTimestamp {raw_expiry!r}: {e}") from e

    return ExecCredentialResponse(
        api_version=api_version,
        token=token or None,
        client_certificate_data=cert_data,
        client_key_data=key_data,
        expiration_timestamp=expiry,
    )


class ProcessInvoker(Protocol):
    """Runs a command and returns its standard output.

    Implementations raise ``OSError`` when the command cannot be started,
    ``subprocess.TimeoutExpired`` when it runs too long, and
    ``subprocess.CalledProcessError`` when it exits with a non-zero status.
    """

    def invoke(self, command: str, args: list[str], env: dict[str, str], timeout: float | None) -> bytes: ...


class SubprocessInvoker:
    """Default invoker backed by :class:`subprocess.Popen`.

    At most ``max_output_bytes + 1`` bytes of standard output are kept; a
    plugin printing more is killed and the truncated output returned, so the
    runner rejects it without buffering the rest. Standard error is capped
    at the same size and its excess discarded.

    Args:
        max_output_bytes: Output size after which the plugin is killed.
    """

    def __init__(self, max_output_bytes: int = MAX_OUTPUT_BYTES) -> None:
        self.max_output_bytes = max_output_bytes

    def invoke(self, command: str, args: list[str], env: dict[str, str], timeout: float | None) -> bytes:
        cmd = [command, *args]
        limit = self.max_output_bytes
        stdout = bytearray()
        stderr = bytearray()
        overflow = threading.Event()

        with subprocess.Popen(
            cmd, env=env, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=subprocess.PIPE
        ) as process:

            def drain_stdout() -> None:
                while True:
                    chunk = process.stdout.read1(READ_CHUNK_BYTES)
                    if not chunk:
                        return
                    stdout.extend(chunk[: limit + 1 - len(stdout)])
                    if len(stdout) > limit:
                        overflow.set()
                        process.kill()
                        return

            def drain_stderr() -> None:
                while True:
                    chunk = process.stderr.read1(READ_CHUNK_BYTES)
                    if not chunk:
                        return
                    if len(stderr) < limit:
                        stderr.extend(chunk[: limit - len(stderr)])

            readers = [
                threading.Thread(target=drain_stdout, daemon=True),
                threading.Thread(target=drain_stderr, daemon=True),
            ]
            for reader in readers:
                reader.start()

            try:
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
                raise
            finally:
                for reader in readers:
                    reader.join(READER_JOIN_TIMEOUT)

        if overflow.is_set():
            logger.debug(f"Killed exec plugin {command} after {limit} bytes of output")
            return bytes(stdout)
        if process.returncode != 0:
            raise subprocess.CalledProcessError(process.returncode, cmd, output=bytes(stdout), stderr=bytes(stderr))
        return bytes(stdout)


class ExecPluginRunner:
    """Run an exec plugin and parse its ``ExecCredential`` response.

    The runner does no caching; every :meth:`run` spawns the command.

    Args:
        invoker: Process invoker; defaults to :class:`SubprocessInvoker`.
        timeout: Seconds the plugin may run before it is killed.
        max_output_bytes: Largest accepted standard output.
    """

    def __init__(
        self,
        invoker: ProcessInvoker | None = None,
        *,
        timeout: float | None = DEFAULT_EXEC_TIMEOUT,
        max_output_bytes: int = MAX_OUTPUT_BYTES,
    ) -> None:
        self._invoker = invoker or SubprocessInvoker(max_output_bytes)
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes

    def _build_env(self, config: ExecConfig) -> dict[str, str]:
        env = dict(os.environ)
        env.update(config.env)
        env[EXEC_INFO_ENV_VAR] = json.dumps(
            {
                "apiVersion": config.api_version,
                "kind": "ExecCredential",
                "spec": {"interactive": False},
            }
        )
        return env

    def run(self, config: ExecConfig) -> ExecCredentialResponse:
        """Invoke the plugin described by ``config``.

        Raises:
            ExecPluginError: If the plugin cannot be started, fails, times
                out, or prints an invalid response.
        """
        logger.debug(f"Running exec credential plugin: {config.command} ({len(config.args)} args)")

        try:
            output = self._invoker.invoke(config.command, list(config.args), self._build_env(config), self.timeout)
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode("utf-8", errors="replace").strip() if isinstance(e.stderr, bytes) else e.stderr
            logger.error(f"Exec plugin {config.command} exited with status {e.returncode}")
            raise ExecPluginError(
                f"Exec plugin {config.command} exited with status {e.returncode}: {stderr or 'no output'}",
                command=config.command,
                exit_code=e.returncode,
                stderr=stderr,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExecPluginError(
                f"Exec plugin {config.command} timed out after {e.timeout}s",
                command=config.command,
            ) from e
        except OSError as e:
            message = f"Exec plugin {config.command} could not be started: {e}"
            if config.install_hint:
                message += f"\n{config.install_hint}"
            raise ExecPluginError(message, command=config.command) from e

        if len(output) > self.max_output_bytes:
            raise ExecPluginError(
                f"Exec plugin {config.command} printed more than {self.max_output_bytes} bytes",
                command=config.command,
            )

        try:
            return parse_exec_credential(output, config.api_version)
        except ExecPluginError as e:
            e.command = config.command
            raise


class ExecCredentialProvider:
    """Credentials obtained from an external exec plugin.

    The plugin's answer is cached until its ``expirationTimestamp``; answers
    without one stay valid for the lifetime of the provider. Concurrent
    resolutions that find the cache empty or expired share one plugin run.
    """

    def __init__(self, config: ExecConfig, runner: ExecPluginRunner | None = None) -> None:
        self.config = config
        self._runner = runner or ExecPluginRunner()
        self._state: ResolvedCredential | None = None
        self._flight = SingleFlight()

    def __repr__(self) -> str:
        return f"ExecCredentialProvider(command={self.config.command!r}, api_version={self.config.api_version!r})"

    def needs_refresh(self) -> bool:
        state = self._state
        return state is None or state.is_expired()

    def resolve(self) -> ResolvedCredential:
        state = self._state
        if state is not None and not state.is_expired():
            return state
        return self._flight.do(self._refresh)

    def _refresh(self) -> ResolvedCredential:
        # Another caller may have refreshed while we waited
        state = self._state
        if state is not None and not state.is_expired():
            return state

        credential = self._runner.run(self.config).to_credential()
        self._state = credential

        kind = "token" if credential.authorization else "client certificate"
        expiry = credential.expiry.isoformat() if credential.expiry else "never"
        logger.info(f"Obtained {kind} from exec plugin {self.config.command} (expires {expiry})")
        return credential
