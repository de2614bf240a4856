"""Cluster access exceptions."""


class ClusterError(Exception):
    """Base exception for cluster API operations."""
    pass


class ClusterConfigError(ClusterError):
    """No usable in-cluster or kubeconfig configuration."""
    pass


class ClusterAPIError(ClusterError):
    """HTTP error from the cluster API server."""

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class ClusterResourceNotFound(ClusterError):
    """Route, ingress, service, port or secret does not exist.

    Endpoint topology is static once the platform is installed, so this is
    never retried.
    """
    pass
