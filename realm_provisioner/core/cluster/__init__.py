"""Cluster (Kubernetes/OpenShift) access for endpoint and secret discovery.

Architecture:
- client.py: API server configuration and read-only object lookups
- discovery.py: Route-first endpoint resolution and admin secret decoding
- exceptions.py: Typed exceptions for error handling
"""
from .client import (
    ClusterClient,
    ClusterConfig,
    load_cluster_config,
    load_incluster_config,
    load_kubeconfig,
)
from .discovery import (
    CredentialSource,
    EndpointResolver,
    is_resolvable,
)
from .exceptions import (
    ClusterError,
    ClusterConfigError,
    ClusterAPIError,
    ClusterResourceNotFound,
)

__all__ = [
    "ClusterClient",
    "ClusterConfig",
    "load_cluster_config",
    "load_incluster_config",
    "load_kubeconfig",
    "CredentialSource",
    "EndpointResolver",
    "is_resolvable",
    "ClusterError",
    "ClusterConfigError",
    "ClusterAPIError",
    "ClusterResourceNotFound",
]
