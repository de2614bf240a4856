"""Minimal Kubernetes/OpenShift API client over requests.

Only the calls the provisioner needs: API group discovery, routes, ingresses,
services and secrets.
"""
from __future__ import annotations
import base64
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import requests
import yaml

from ..models import Endpoint
from .exceptions import ClusterAPIError, ClusterConfigError, ClusterResourceNotFound

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")
DEFAULT_KUBECONFIG = Path("~/.kube/config")
DEFAULT_NAMESPACE = "default"
REQUEST_TIMEOUT = 10
OPENSHIFT_ROUTE_GROUP = "route.openshift.io"


@dataclass
class ClusterConfig:
    """Connection settings for the cluster API server."""
    server: str
    token: Optional[str] = None
    verify: Union[bool, str] = True
    client_cert: Optional[Tuple[str, str]] = None
    namespace: Optional[str] = None
    temp_files: list[str] = field(default_factory=list, repr=False)


def _materialize(data: str, suffix: str, temp_files: list[str]) -> str:
    """Write base64 kubeconfig data to a private temp file and return its path."""
    handle = tempfile.NamedTemporaryFile("wb", suffix=suffix, delete=False)
    with handle:
        handle.write(base64.b64decode(data))
    os.chmod(handle.name, 0o600)
    temp_files.append(handle.name)
    return handle.name


def _named(entries: list, name: str, kind: str) -> dict:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(kind) or {}
    raise ClusterConfigError(f"kubeconfig has no {kind} named '{name}'")


def load_incluster_config(sa_dir: Path = SERVICE_ACCOUNT_DIR) -> Optional[ClusterConfig]:
    """Return the pod's service-account configuration, or None outside a pod."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
    token_file = sa_dir / "token"
    if not host or not token_file.is_file():
        return None
    if ":" in host:
        host = f"[{host}]"
    ca_file = sa_dir / "ca.crt"
    namespace_file = sa_dir / "namespace"
    return ClusterConfig(
        server=f"https://{host}:{port}",
        token=token_file.read_text().strip(),
        verify=str(ca_file) if ca_file.is_file() else True,
        namespace=namespace_file.read_text().strip() if namespace_file.is_file() else None,
    )


def load_kubeconfig(path: Optional[Union[str, Path]] = None) -> ClusterConfig:
    """Parse the current context of a kubeconfig file.

    Args:
        path: kubeconfig path (defaults to $KUBECONFIG, then ~/.kube/config)

    Raises:
        ClusterConfigError: If the file is missing or incomplete
    """
    raw = path or os.environ.get("KUBECONFIG") or DEFAULT_KUBECONFIG
    # KUBECONFIG may list several files; the first one wins here
    kubeconfig = Path(str(raw).split(os.pathsep)[0]).expanduser()
    if not kubeconfig.is_file():
        raise ClusterConfigError(f"kubeconfig not found at {kubeconfig}")
    document = yaml.safe_load(kubeconfig.read_text()) or {}

    context_name = document.get("current-context")
    if not context_name:
        raise ClusterConfigError(f"kubeconfig {kubeconfig} has no current-context")
    context = _named(document.get("contexts"), context_name, "context")
    cluster = _named(document.get("clusters"), context.get("cluster"), "cluster")
    user = _named(document.get("users"), context.get("user"), "user") if context.get("user") else {}

    server = cluster.get("server")
    if not server:
        raise ClusterConfigError(f"cluster '{context.get('cluster')}' has no server URL")

    static_auth = ("token", "tokenFile", "client-certificate", "client-certificate-data")
    if not any(user.get(key) for key in static_auth):
        for method in ("exec", "auth-provider"):
            if user.get(method):
                raise ClusterConfigError(
                    f"kubeconfig user '{context.get('user')}' uses unsupported auth method '{method}'; "
                    "use a token or client certificate"
                )

    temp_files: list[str] = []
    verify: Union[bool, str] = True
    if cluster.get("insecure-skip-tls-verify"):
        verify = False
    elif cluster.get("certificate-authority-data"):
        verify = _materialize(cluster["certificate-authority-data"], ".crt", temp_files)
    elif cluster.get("certificate-authority"):
        verify = cluster["certificate-authority"]

    token = user.get("token")
    if not token and user.get("tokenFile"):
        token = Path(user["tokenFile"]).read_text().strip()

    client_cert = None
    if user.get("client-certificate-data") and user.get("client-key-data"):
        client_cert = (
            _materialize(user["client-certificate-data"], ".crt", temp_files),
            _materialize(user["client-key-data"], ".key", temp_files),
        )
    elif user.get("client-certificate") and user.get("client-key"):
        client_cert = (user["client-certificate"], user["client-key"])

    return ClusterConfig(
        server=server,
        token=token,
        verify=verify,
        client_cert=client_cert,
        namespace=context.get("namespace"),
        temp_files=temp_files,
    )


def load_cluster_config(kubeconfig: Optional[Union[str, Path]] = None) -> ClusterConfig:
    """In-cluster configuration first, kubeconfig otherwise."""
    config = None if kubeconfig else load_incluster_config()
    if config is not None:
        logger.debug("[cluster] Using in-cluster service account")
        return config
    return load_kubeconfig(kubeconfig)


class ClusterClient:
    """Read-only access to the cluster objects that locate Keycloak.

    Usage:
        with ClusterClient(load_cluster_config(), namespace="enmasse") as cluster:
            host = cluster.resolve_route("enmasse", "keycloak")
    """

    def __init__(
        self,
        config: ClusterConfig,
        namespace: Optional[str] = None,
        *,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize cluster client.

        Args:
            config: API server connection settings
            namespace: Namespace holding the platform objects (falls back to
                the configured namespace, then "default")
            timeout: Per-request timeout in seconds
            session: Pre-built requests session (tests)
        """
        self.config = config
        self.base_url = config.server.rstrip("/")
        self.namespace = namespace or config.namespace or DEFAULT_NAMESPACE
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.verify = config.verify
        if config.client_cert:
            self.session.cert = config.client_cert
        if config.token:
            self.session.headers["Authorization"] = f"Bearer {config.token}"
        self._openshift: Optional[bool] = None

    def _get(self, path: str) -> Optional[Dict[str, Any]]:
        """GET a cluster object; None on 404, ClusterAPIError on other failures."""
        url = f"{self.base_url}{path}"
        resp = self.session.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise ClusterAPIError(resp.status_code, resp.text, url)
        return resp.json()

    def _require(self, path: str, kind: str, namespace: str, name: str) -> Dict[str, Any]:
        obj = self._get(path)
        if obj is None:
            raise ClusterResourceNotFound(f"{kind} '{name}' not found in namespace '{namespace}'")
        return obj

    def is_openshift(self) -> bool:
        """Return True if the API server serves the OpenShift route API group."""
        if self._openshift is None:
            try:
                groups = self._get("/apis") or {}
                names = {group.get("name") for group in groups.get("groups", [])}
                self._openshift = OPENSHIFT_ROUTE_GROUP in names
            except (requests.RequestException, ClusterAPIError) as exc:
                logger.warning("[cluster] Cannot access cluster for detecting mode: %s", exc)
                return False
        return self._openshift

    def resolve_route(self, namespace: str, name: str) -> str:
        """Return the externally routable host for ``name``.

        OpenShift Routes are used when available, Ingress rules otherwise.

        Raises:
            ClusterResourceNotFound: If the object or its host is missing
        """
        if self.is_openshift():
            route = self._require(
                f"/apis/route.openshift.io/v1/namespaces/{namespace}/routes/{name}",
                "Route", namespace, name,
            )
            host = (route.get("spec") or {}).get("host")
        else:
            ingress = self._require(
                f"/apis/networking.k8s.io/v1/namespaces/{namespace}/ingresses/{name}",
                "Ingress", namespace, name,
            )
            rules = (ingress.get("spec") or {}).get("rules") or []
            host = next((rule.get("host") for rule in rules if rule.get("host")), None)
        if not host:
            raise ClusterResourceNotFound(f"Route '{name}' in namespace '{namespace}' has no host")
        return host

    def resolve_service_endpoint(self, namespace: str, name: str, port_name: str) -> Endpoint:
        """Return the cluster IP and named port of a service.

        Raises:
            ClusterResourceNotFound: If the service or the port is missing
        """
        service = self._require(f"/api/v1/namespaces/{namespace}/services/{name}", "Service", namespace, name)
        spec = service.get("spec") or {}
        for port in spec.get("ports") or []:
            if port.get("name") == port_name:
                return Endpoint(spec.get("clusterIP"), int(port["port"]))
        raise ClusterResourceNotFound(f"Unable to find port {port_name} for service {name}")

    def get_secret(self, namespace: str, name: str) -> Optional[Dict[str, str]]:
        """Return the secret's data mapping (base64 values) or None if absent."""
        secret = self._get(f"/api/v1/namespaces/{namespace}/secrets/{name}")
        if secret is None:
            return None
        return secret.get("data") or {}

    def close(self) -> None:
        self.session.close()
        for path in self.config.temp_files:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass
        self.config.temp_files.clear()

    def __enter__(self) -> "ClusterClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
