"""Locating Keycloak and its admin secrets inside the cluster."""
from __future__ import annotations
import base64
import logging
import socket
import time
from typing import Callable, List, Optional, Protocol

from ..models import Credentials, Endpoint
from .exceptions import ClusterResourceNotFound

logger = logging.getLogger(__name__)

ROUTE_PORT = 443
SERVICE_PORT_NAME = "https"
PROBE_ATTEMPTS = 10
PROBE_DELAY = 1.0

KEYCLOAK_ROUTE = "keycloak"
KEYCLOAK_SERVICE = "standard-authservice"
REST_ROUTE = "restapi"
REST_SERVICE = "address-controller"

CREDENTIALS_SECRET = "keycloak-credentials"
CA_SECRET = "standard-authservice-cert"


class ClusterLookup(Protocol):
    """The slice of ClusterClient that discovery depends on."""

    namespace: str

    def resolve_route(self, namespace: str, name: str) -> str: ...

    def resolve_service_endpoint(self, namespace: str, name: str, port_name: str) -> Endpoint: ...

    def get_secret(self, namespace: str, name: str) -> Optional[dict]: ...


def lookup_addresses(host: str) -> List[str]:
    """Return the IPv4 addresses DNS currently knows for ``host``."""
    _, _, addresses = socket.gethostbyname_ex(host)
    return addresses


def is_resolvable(
    host: str,
    attempts: int = PROBE_ATTEMPTS,
    delay: float = PROBE_DELAY,
    *,
    resolver: Optional[Callable[[str], List[str]]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> bool:
    """Probe DNS for ``host`` up to ``attempts`` times, ``delay`` seconds apart.

    Resolution errors count as "not yet resolvable" and are not raised.
    """
    resolver = resolver or lookup_addresses
    sleep = sleep or time.sleep
    for attempt in range(1, attempts + 1):
        try:
            if resolver(host):
                return True
        except Exception as exc:
            logger.debug("[endpoint] Probe %d/%d for %s failed: %s", attempt, attempts, host, exc)
        if attempt < attempts:
            sleep(delay)
    return False


class EndpointResolver:
    """Route-first, service-fallback resolution of named cluster endpoints."""

    def __init__(
        self,
        cluster: ClusterLookup,
        *,
        probe_attempts: int = PROBE_ATTEMPTS,
        probe_delay: float = PROBE_DELAY,
        resolvable: Optional[Callable[[str], bool]] = None,
    ):
        """Initialize endpoint resolver.

        Args:
            cluster: Cluster client used for route and service lookups
            probe_attempts: DNS probes before falling back to the service
            probe_delay: Seconds between DNS probes
            resolvable: Host probe override (tests)
        """
        self.cluster = cluster
        self.probe_attempts = probe_attempts
        self.probe_delay = probe_delay
        self._resolvable = resolvable or (
            lambda host: is_resolvable(host, self.probe_attempts, self.probe_delay)
        )

    def resolve(
        self,
        namespace: str,
        route_name: str,
        service_name: Optional[str] = None,
        port_name: str = SERVICE_PORT_NAME,
    ) -> Endpoint:
        """Return the route endpoint if its host resolves, else the service endpoint.

        Args:
            namespace: Namespace holding both objects
            route_name: Route (or Ingress) name
            service_name: Fallback service name (defaults to route_name)
            port_name: Named service port used for the fallback

        Raises:
            ClusterResourceNotFound: If the route or the fallback service is missing
        """
        candidate = Endpoint(self.cluster.resolve_route(namespace, route_name), ROUTE_PORT)
        logger.info("[endpoint] Testing endpoint : %s", candidate)
        if self._resolvable(candidate.host):
            return candidate
        logger.info("[endpoint] Endpoint didn't resolve, falling back to service endpoint")
        return self.cluster.resolve_service_endpoint(namespace, service_name or route_name, port_name)

    def keycloak_endpoint(self) -> Endpoint:
        return self.resolve(self.cluster.namespace, KEYCLOAK_ROUTE, KEYCLOAK_SERVICE)

    def rest_endpoint(self) -> Endpoint:
        return self.resolve(self.cluster.namespace, REST_ROUTE, REST_SERVICE)

    def external_endpoint(self, namespace: str, name: str) -> Endpoint:
        return self.resolve(namespace, name)


def _decode(data: dict, key: str, secret: str) -> str:
    if key not in data:
        raise ClusterResourceNotFound(f"Secret '{secret}' has no key '{key}'")
    return base64.b64decode(data[key]).decode("utf-8")


class CredentialSource:
    """Admin credentials and CA certificate published as cluster secrets."""

    def __init__(self, cluster: ClusterLookup):
        self.cluster = cluster

    def keycloak_credentials(self) -> Optional[Credentials]:
        """Return the admin login from the credentials secret, or None if absent."""
        data = self.cluster.get_secret(self.cluster.namespace, CREDENTIALS_SECRET)
        if data is None:
            return None
        return Credentials(
            _decode(data, "admin.username", CREDENTIALS_SECRET),
            _decode(data, "admin.password", CREDENTIALS_SECRET),
        )

    def keycloak_ca(self) -> str:
        """Return the PEM text of Keycloak's CA certificate.

        Raises:
            ClusterResourceNotFound: If the certificate secret is missing
        """
        data = self.cluster.get_secret(self.cluster.namespace, CA_SECRET)
        if data is None:
            raise ClusterResourceNotFound("Unable to find CA cert for keycloak")
        return _decode(data, "tls.crt", CA_SECRET)
