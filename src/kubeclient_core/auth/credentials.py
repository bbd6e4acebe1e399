"""Environment and file lookups for cluster credentials.

The resolver answers the questions the configuration layer asks of the
host environment: where is the kubeconfig (``KUBECONFIG``), which API
server does an in-cluster pod talk to (``KUBERNETES_SERVICE_HOST``), and
what is in the service-account token or certificate file.

Resolution order for values (highest to lowest priority):
1. Explicitly provided value
2. Environment variable
3. .env file (python-dotenv)
4. Default value

Example:
    ```python
    from kubeclient_core.auth import CredentialResolver

    resolver = CredentialResolver()

    kubeconfig = resolver.resolve(env_var_name="KUBECONFIG", default="~/.kube/config")

    token = resolver.resolve_from_file(
        file_path="/var/run/secrets/kubernetes.io/serviceaccount/token",
        required=True,
    )
    ```

Security Considerations:
    - Credentials are never logged in full (masked with ***)
    - Only source information is logged (env var name, file path, etc.)
    - Text credentials have whitespace stripped
    - Thread-safe dotenv loading with lock
"""

import logging
import os
from pathlib import Path
from threading import Lock

from dotenv import load_dotenv

from kubeclient_core.auth.exceptions import CredentialFileError, CredentialNotFoundError

logger = logging.getLogger(__name__)


def expand_path(path: str | Path, base_dir: str | Path | None = None) -> Path:
    """Expand ``~`` and ``$VAR`` in a path and anchor relative paths.

    Args:
        path: The path as written in configuration.
        base_dir: Directory that relative paths are resolved against,
            usually the directory of the kubeconfig file that declared them.

    Returns:
        The expanded path.
    """
    expanded = Path(os.path.expanduser(os.path.expandvars(str(path))))
    if base_dir is not None and not expanded.is_absolute():
        expanded = Path(base_dir) / expanded
    return expanded


class CredentialResolver:
    """Resolve credentials from the environment, .env files, and disk.

    Explicitly provided values take precedence over environment variables,
    which take precedence over .env file values, which finally take
    precedence over defaults.

    Attributes:
        _dotenv_loaded: Whether .env file has been loaded.
        _dotenv_lock: Thread lock for safe dotenv loading.
    """

    def __init__(self, dotenv_path: str | None = None, load_dotenv: bool = True):
        """Initialize credential resolver.

        Args:
            dotenv_path: Path to .env file. If None, searches parent directories
                for .env file (default behavior of python-dotenv).
            load_dotenv: Whether to load .env file. Set to False to skip
                .env file loading. Default is True.
        """
        self._dotenv_loaded = False
        self._dotenv_lock = Lock()
        self._dotenv_path = dotenv_path
        self._load_dotenv_enabled = load_dotenv

        if self._load_dotenv_enabled:
            self._ensure_dotenv_loaded()

    def _ensure_dotenv_loaded(self) -> None:
        """Ensure .env file is loaded (thread-safe, only once)."""
        if self._dotenv_loaded:
            return

        with self._dotenv_lock:
            # Double-check pattern for thread safety
            if self._dotenv_loaded:
                return

            try:
                load_dotenv(dotenv_path=self._dotenv_path)
                self._dotenv_loaded = True
                logger.debug("Loaded .env file for credential resolution")
            except Exception as e:
                logger.warning(f"Failed to load .env file: {e}")
                # Don't fail - continue without .env
                self._dotenv_loaded = True

    def _mask_credential(self, value: str | None) -> str:
        """Mask a credential value for safe logging."""
        if value is None:
            return "None"
        return "***"

    def resolve(
        self,
        *,
        value: str | None = None,
        env_var_name: str | None = None,
        default: str | None = None,
        required: bool = False,
        mask_in_logs: bool = True,
    ) -> str | None:
        """Resolve a value from multiple sources.

        Args:
            value: Explicitly provided value (highest priority).
            env_var_name: Environment variable name to check. Values loaded
                from the .env file are visible here too.
            default: Default value if not found elsewhere.
            required: If True, raises CredentialNotFoundError when the value
                cannot be resolved.
            mask_in_logs: If True (default), masks values in log messages.
                Disable for non-sensitive values such as paths and hosts.

        Returns:
            Resolved value, or None if not found and not required.

        Raises:
            CredentialNotFoundError: If required=True and nothing was found.
        """
        result = None
        source = None

        if value is not None:
            result = value
            source = "explicit parameter"
        elif env_var_name and os.environ.get(env_var_name):
            result = os.environ[env_var_name]
            source = f"environment variable '{env_var_name}'"
        elif default is not None:
            result = default
            source = "default value"

        if result is not None:
            shown = self._mask_credential(result) if mask_in_logs else result
            logger.debug(f"Resolved credential from {source}: {shown}")

        if required and result is None:
            error_msg = "Required credential not found"
            if env_var_name:
                error_msg += f" (checked env var: {env_var_name})"
            raise CredentialNotFoundError(error_msg, env_var_name=env_var_name)

        return result

    def _read(self, file_path: str | Path, *, binary: bool, required: bool) -> str | bytes | None:
        path_obj = expand_path(file_path)

        try:
            content = path_obj.read_bytes() if binary else path_obj.read_text().strip()
            logger.debug(f"Resolved credential from file: {path_obj} (***)")
            return content

        except FileNotFoundError:
            error_msg = f"Credential file not found: {path_obj}"
            if required:
                raise CredentialFileError(error_msg) from None
            logger.debug(error_msg)
            return None

        except PermissionError:
            error_msg = f"Permission denied reading credential file: {path_obj}"
            if required:
                raise CredentialFileError(error_msg) from None
            logger.warning(error_msg)
            return None

        except OSError as e:
            error_msg = f"Error reading credential file {path_obj}: {e}"
            if required:
                raise CredentialFileError(error_msg) from e
            logger.warning(error_msg)
            return None

    def resolve_from_file(
        self,
        *,
        file_path: str | Path | None = None,
        env_var_name: str | None = None,
        required: bool = False,
    ) -> str | None:
        """Read a text credential (such as a bearer token) from a file.

        The path may be given directly or through an environment variable,
        and supports ``~`` and ``$VAR`` expansion. Contents are stripped of
        leading and trailing whitespace.

        Args:
            file_path: Path to the file containing the credential.
            env_var_name: Environment variable holding the path, used when
                file_path is None.
            required: If True, raises CredentialFileError when the file
                cannot be read.

        Returns:
            File contents, or None if not found and not required.

        Raises:
            CredentialFileError: If required=True and the file cannot be read.
        """
        path_to_use = None

        if file_path is not None:
            path_to_use = str(file_path)
        elif env_var_name:
            path_to_use = self.resolve(env_var_name=env_var_name, required=False, mask_in_logs=False)

        if path_to_use is None:
            if required:
                error_msg = "No file path provided for credential resolution"
                if env_var_name:
                    error_msg += f" (env var '{env_var_name}' not set)"
                raise CredentialFileError(error_msg)
            return None

        return self._read(path_to_use, binary=False, required=required)

    def read_bytes(self, file_path: str | Path) -> bytes:
        """Read binary credential material (certificates, keys, bundles).

        Args:
            file_path: Path to the file.

        Returns:
            The raw file contents.

        Raises:
            CredentialFileError: If the file cannot be read.
        """
        return self._read(file_path, binary=True, required=True)
