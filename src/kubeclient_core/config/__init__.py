"""Connection configuration: kubeconfig parsing and resolution."""

from kubeclient_core.config.configuration import ClientConfiguration
from kubeclient_core.config.kubeconfig import AuthProviderConfig, Cluster, Context, KubeConfig, User
from kubeclient_core.config.resolver import (
    build_config_from_kubeconfig,
    build_configuration,
    credential_for_user,
    in_cluster_config,
    kubeconfig_paths,
    load_kube_config,
)

__all__ = [
    "AuthProviderConfig",
    "ClientConfiguration",
    "Cluster",
    "Context",
    "KubeConfig",
    "User",
    "build_config_from_kubeconfig",
    "build_configuration",
    "credential_for_user",
    "in_cluster_config",
    "kubeconfig_paths",
    "load_kube_config",
]
