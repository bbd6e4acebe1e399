"""Testing utilities for code built on kubeclient-core.

Helpers to stand in for the API server, exec plugins and identity
providers without network access or real processes.

Example:
    ```python
    from kubeclient_core import KubernetesClient, build_configuration
    from kubeclient_core.testing import create_mock_api_transport, require_authorization


    def test_token_is_sent():
        transport = create_mock_api_transport(require_authorization("Bearer abc"))
        client = KubernetesClient(build_configuration("https://k8s.test", token="abc"), transport=transport)
        assert client.get("/api/v1/namespaces/default/pods").status_code == 200
    ```
"""

import json
import subprocess
import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt

TEST_SIGNING_KEY = "kubeclient-core-test-signing-key-0123456789"


def pod_list(count: int = 1, namespace: str = "default") -> dict[str, Any]:
    """A minimal ``PodList`` body."""
    return {
        "kind": "PodList",
        "apiVersion": "v1",
        "metadata": {"resourceVersion": "1"},
        "items": [
            {"metadata": {"name": f"pod-{index}", "namespace": namespace}, "status": {"phase": "Running"}}
            for index in range(count)
        ],
    }


def unauthorized_status() -> dict[str, Any]:
    return {
        "kind": "Status",
        "apiVersion": "v1",
        "status": "Failure",
        "message": "Unauthorized",
        "reason": "Unauthorized",
        "code": 401,
    }


def require_authorization(expected: str | None) -> Callable[[httpx.Request], bool]:
    """Predicate accepting requests whose ``Authorization`` header equals ``expected``."""

    def check(request: httpx.Request) -> bool:
        return request.headers.get("Authorization") == expected

    return check


def create_mock_api_transport(
    authorize: Callable[[httpx.Request], bool] | None = None,
    *,
    pods: int = 1,
) -> httpx.MockTransport:
    """An API server answering every request with a pod list.

    Args:
        authorize: Returns False for requests to reject with 401. When None
            every request is accepted.
        pods: Number of pods in the returned list.

    The transport records handled requests in its ``requests`` attribute.
    """
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if authorize is not None and not authorize(request):
            return httpx.Response(401, json=unauthorized_status())
        return httpx.Response(200, json=pod_list(pods))

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


def make_id_token(claims: dict[str, Any] | None = None, *, expires_in: float | None = 3600) -> str:
    """Create a signed compact JWT for OIDC tests.

    Args:
        claims: Extra claims.
        expires_in: Seconds until ``exp``; negative for an expired token,
            None to omit ``exp``.
    """
    now = int(time.time())
    payload = {"iat": now, "sub": "test-user"}
    if expires_in is not None:
        payload["exp"] = int(now + expires_in)
    payload.update(claims or {})
    return jwt.encode(payload, TEST_SIGNING_KEY, algorithm="HS256")


def exec_credential_json(
    *,
    token: str | None = None,
    client_certificate_data: str | None = None,
    client_key_data: str | None = None,
    expiration_timestamp: str | None = None,
    api_version: str = "client.authentication.k8s.io/v1",
) -> bytes:
    """Build the standard output of an exec plugin."""
    status: dict[str, Any] = {}
    if token is not None:
        status["token"] = token
    if client_certificate_data is not None:
        status["clientCertificateData"] = client_certificate_data
    if client_key_data is not None:
        status["clientKeyData"] = client_key_data
    if expiration_timestamp is not None:
        status["expirationTimestamp"] = expiration_timestamp
    return json.dumps({"apiVersion": api_version, "kind": "ExecCredential", "status": status}).encode("utf-8")


class StubInvoker:
    """A process invoker returning canned output instead of spawning processes.

    Args:
        output: Standard output to return.
        returncode: Non-zero to raise ``CalledProcessError`` instead.
        stderr: Standard error attached to the raised error.

    Attributes:
        calls: ``(command, args, env)`` of every invocation.
    """

    def __init__(self, output: bytes = b"", *, returncode: int = 0, stderr: bytes = b"") -> None:
        self.output = output
        self.returncode = returncode
        self.stderr = stderr
        self.calls: list[tuple[str, list[str], dict[str, str]]] = []

    def invoke(self, command: str, args: list[str], env: dict[str, str], timeout: float | None) -> bytes:
        self.calls.append((command, args, env))
        if self.returncode != 0:
            raise subprocess.CalledProcessError(
                self.returncode, [command, *args], output=self.output, stderr=self.stderr
            )
        return self.output


def create_mock_idp_transport(
    *,
    issuer_url: str = "https://idp.test",
    id_token: str | None = None,
    refresh_token: str | None = None,
    status_code: int = 200,
) -> httpx.MockTransport:
    """An identity provider serving discovery and the refresh-token grant.

    The transport records handled requests in its ``requests`` attribute.
    """
    requests: list[httpx.Request] = []
    token_endpoint = f"{issuer_url.rstrip('/')}/token"

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/.well-known/openid-configuration"):
            return httpx.Response(200, json={"issuer": issuer_url, "token_endpoint": token_endpoint})
        if str(request.url) == token_endpoint and request.method == "POST":
            if status_code != 200:
                return httpx.Response(status_code, json={"error": "invalid_grant"})
            body: dict[str, Any] = {"id_token": id_token or make_id_token(), "token_type": "Bearer"}
            if refresh_token is not None:
                body["refresh_token"] = refresh_token
            return httpx.Response(200, json=body)
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


__all__ = [
    "TEST_SIGNING_KEY",
    "StubInvoker",
    "create_mock_api_transport",
    "create_mock_idp_transport",
    "exec_credential_json",
    "make_id_token",
    "pod_list",
    "require_authorization",
    "unauthorized_status",
]
