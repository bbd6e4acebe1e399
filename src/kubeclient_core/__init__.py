"""kubeclient-core - credential resolution and request authentication for cluster API clients.

This library turns a kubeconfig (or inline settings) into an authenticated
httpx client:
- Kubeconfig parsing and context resolution
- Anonymous, basic, bearer token, client certificate, exec plugin and OIDC
  credentials behind one contract
- TLS trust and client certificate configuration
- A small, typed error taxonomy

Example:
    ```python
    from kubeclient_core import KubernetesClient

    with KubernetesClient.from_kubeconfig() as client:
        pods = client.get("/api/v1/namespaces/default/pods").json()
    ```
"""

__version__ = "0.1.0"

from kubeclient_core.client import AsyncKubernetesClient, KubernetesClient  # noqa: E402
from kubeclient_core.config import ClientConfiguration, build_configuration, load_kube_config  # noqa: E402

__all__ = [
    "AsyncKubernetesClient",
    "ClientConfiguration",
    "KubernetesClient",
    "__version__",
    "build_configuration",
    "load_kube_config",
]
