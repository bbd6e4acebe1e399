"""Custom exceptions for credential resolution and authentication.

This module defines exceptions used throughout the authentication system:
malformed credential material, exec plugin failures, and OIDC refresh
failures.

Example:
    ```python
    from kubeclient_core.auth.exceptions import CredentialRefreshError

    try:
        client.get("/api/v1/namespaces/default/pods")
    except CredentialRefreshError as e:
        print(f"Login again: {e}")
    ```
"""

from kubeclient_core.errors.exceptions import KubeClientError

# Callers match on this prefix, keep it stable.
OIDC_REFRESH_ERROR_PREFIX = "Unable to refresh OIDC token."


class CredentialError(KubeClientError):
    """Base exception for credential-related errors.

    Raised directly for malformed certificate or key material, including a
    private key that does not match its certificate.
    """

    pass


class CredentialNotFoundError(CredentialError):
    """Raised when a required credential cannot be resolved.

    Attributes:
        env_var_name: The environment variable name that was checked (if any).

    Example:
        ```python
        try:
            host = resolver.resolve(env_var_name="KUBERNETES_SERVICE_HOST", required=True)
        except CredentialNotFoundError as e:
            print(f"Missing credential: {e.env_var_name}")
        ```
    """

    def __init__(self, message: str, env_var_name: str | None = None):
        """Initialize CredentialNotFoundError.

        Args:
            message: Error message describing what credential is missing.
            env_var_name: Optional environment variable name for reference.
        """
        super().__init__(message)
        self.env_var_name = env_var_name


class CredentialFileError(CredentialError):
    """Raised when a credential file (token, certificate, key) cannot be read."""

    pass


class ExecPluginError(KubeClientError):
    """Raised when an external credential plugin fails.

    The plugin could not be started, exited with a non-zero status, timed
    out, or printed something that is not a valid ``ExecCredential``.

    Attributes:
        command: The command that was run.
        exit_code: The process exit code, when the process ran to completion.
        stderr: Captured standard error, when available.
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
    ):
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class CredentialRefreshError(KubeClientError):
    """Raised when an OIDC id token cannot be refreshed.

    The message always starts with ``"Unable to refresh OIDC token."``.
    """

    def __init__(self, detail: str):
        super().__init__(f"{OIDC_REFRESH_ERROR_PREFIX} {detail}")
        self.detail = detail
