"""Tests for cluster configuration loading and ClusterClient lookups."""
import base64
import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
import yaml

from realm_provisioner.core.cluster import client as cluster_client
from realm_provisioner.core.cluster.client import (
    ClusterClient,
    ClusterConfig,
    load_cluster_config,
    load_incluster_config,
    load_kubeconfig,
)
from realm_provisioner.core.cluster.exceptions import (
    ClusterAPIError,
    ClusterConfigError,
    ClusterResourceNotFound,
)
from realm_provisioner.core.models import Endpoint


def b64(text):
    return base64.b64encode(text.encode()).decode()


def write_kubeconfig(tmp_path, cluster=None, user=None, namespace="enmasse"):
    document = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "dev",
        "contexts": [{"name": "dev", "context": {"cluster": "c1", "user": "u1", "namespace": namespace}}],
        "clusters": [{"name": "c1", "cluster": cluster or {"server": "https://api.example.com:6443"}}],
        "users": [{"name": "u1", "user": user or {"token": "sa-token"}}],
    }
    path = tmp_path / "kubeconfig"
    path.write_text(yaml.safe_dump(document))
    return path


def response(status=200, payload=None):
    resp = MagicMock(status_code=status, text=str(payload))
    resp.json.return_value = payload
    return resp


@pytest.fixture
def http():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def make_cluster(http):
    """ClusterClient whose GETs are answered from a path -> response mapping."""

    def factory(objects, openshift=True):
        groups = [{"name": "apps"}] + ([{"name": "route.openshift.io"}] if openshift else [])
        table = {"/apis": response(payload={"groups": groups})}
        table.update({path: response(payload=obj) for path, obj in objects.items()})

        def get(url, timeout=None):
            path = url.replace("https://api.example.com:6443", "")
            return table.get(path, response(status=404, payload="not found"))

        http.get.side_effect = get
        return ClusterClient(ClusterConfig(server="https://api.example.com:6443", token="t"), "enmasse", session=http)

    return factory


# ─────────────────────────────────────────────────────────────────────────────
# Configuration loading
# ─────────────────────────────────────────────────────────────────────────────
class TestKubeconfig:
    def test_token_and_namespace(self, tmp_path):
        config = load_kubeconfig(write_kubeconfig(tmp_path))

        assert config.server == "https://api.example.com:6443"
        assert config.token == "sa-token"
        assert config.namespace == "enmasse"
        assert config.verify is True

    def test_embedded_data_materialized(self, tmp_path):
        path = write_kubeconfig(
            tmp_path,
            cluster={"server": "https://api.example.com:6443", "certificate-authority-data": b64("CA PEM")},
            user={"client-certificate-data": b64("CERT"), "client-key-data": b64("KEY")},
        )

        config = load_kubeconfig(path)
        try:
            assert Path(config.verify).read_text() == "CA PEM"
            cert_path, key_path = config.client_cert
            assert Path(key_path).read_text() == "KEY"
            assert oct(os.stat(key_path).st_mode & 0o777) == "0o600"
            assert len(config.temp_files) == 3
        finally:
            ClusterClient(config, session=MagicMock(headers={})).close()

        assert not any(os.path.exists(p) for p in (config.verify, cert_path, key_path))

    def test_insecure_skip_verify(self, tmp_path):
        path = write_kubeconfig(
            tmp_path, cluster={"server": "https://api.example.com:6443", "insecure-skip-tls-verify": True}
        )
        assert load_kubeconfig(path).verify is False

    def test_token_file(self, tmp_path):
        token_file = tmp_path / "token"
        token_file.write_text("from-file\n")

        config = load_kubeconfig(write_kubeconfig(tmp_path, user={"tokenFile": str(token_file)}))

        assert config.token == "from-file"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ClusterConfigError):
            load_kubeconfig(tmp_path / "nope")

    def test_env_var_used(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KUBECONFIG", str(write_kubeconfig(tmp_path)))

        assert load_kubeconfig().token == "sa-token"

    @pytest.mark.parametrize("user", [
        {"exec": {"apiVersion": "client.authentication.k8s.io/v1beta1", "command": "aws"}},
        {"auth-provider": {"name": "oidc", "config": {}}},
    ])
    def test_plugin_auth_rejected(self, tmp_path, user):
        method = next(iter(user))

        with pytest.raises(ClusterConfigError, match=method):
            load_kubeconfig(write_kubeconfig(tmp_path, user=user))

    def test_plugin_auth_ignored_when_token_present(self, tmp_path):
        user = {"token": "sa-token", "exec": {"command": "aws"}}

        assert load_kubeconfig(write_kubeconfig(tmp_path, user=user)).token == "sa-token"

    def test_unknown_context_cluster(self, tmp_path):
        path = tmp_path / "kubeconfig"
        path.write_text(yaml.safe_dump({
            "current-context": "dev",
            "contexts": [{"name": "dev", "context": {"cluster": "missing"}}],
            "clusters": [],
        }))

        with pytest.raises(ClusterConfigError, match="missing"):
            load_kubeconfig(path)


class TestInClusterConfig:
    def test_service_account(self, tmp_path, monkeypatch):
        (tmp_path / "token").write_text("pod-token\n")
        (tmp_path / "ca.crt").write_text("CA")
        (tmp_path / "namespace").write_text("enmasse")
        monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
        monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "443")

        config = load_incluster_config(tmp_path)

        assert config.server == "https://10.0.0.1:443"
        assert config.token == "pod-token"
        assert config.verify == str(tmp_path / "ca.crt")
        assert config.namespace == "enmasse"

    def test_outside_pod(self, tmp_path, monkeypatch):
        monkeypatch.delenv("KUBERNETES_SERVICE_HOST", raising=False)
        assert load_incluster_config(tmp_path) is None

    def test_explicit_kubeconfig_skips_service_account(self, tmp_path, monkeypatch):
        monkeypatch.setattr(cluster_client, "load_incluster_config", lambda: pytest.fail("must not be called"))

        assert load_cluster_config(write_kubeconfig(tmp_path)).token == "sa-token"


# ─────────────────────────────────────────────────────────────────────────────
# ClusterClient
# ─────────────────────────────────────────────────────────────────────────────
class TestClusterClient:
    def test_token_header(self, make_cluster, http):
        make_cluster({})
        assert http.headers["Authorization"] == "Bearer t"

    def test_openshift_route_host(self, make_cluster):
        cluster = make_cluster({
            "/apis/route.openshift.io/v1/namespaces/enmasse/routes/keycloak":
                {"spec": {"host": "keycloak-enmasse.apps.example.com"}},
        })

        assert cluster.is_openshift() is True
        assert cluster.resolve_route("enmasse", "keycloak") == "keycloak-enmasse.apps.example.com"

    def test_ingress_host_on_kubernetes(self, make_cluster):
        cluster = make_cluster({
            "/apis/networking.k8s.io/v1/namespaces/enmasse/ingresses/keycloak":
                {"spec": {"rules": [{"http": {}}, {"host": "kc.example.com"}]}},
        }, openshift=False)

        assert cluster.is_openshift() is False
        assert cluster.resolve_route("enmasse", "keycloak") == "kc.example.com"

    def test_detection_cached(self, make_cluster, http):
        cluster = make_cluster({})

        cluster.is_openshift()
        cluster.is_openshift()

        assert http.get.call_count == 1

    def test_detection_failure_means_kubernetes(self, http):
        http.get.side_effect = requests.ConnectionError("refused")
        cluster = ClusterClient(ClusterConfig(server="https://api.example.com:6443"), session=http)

        assert cluster.is_openshift() is False

    def test_missing_route(self, make_cluster):
        with pytest.raises(ClusterResourceNotFound, match="keycloak"):
            make_cluster({}).resolve_route("enmasse", "keycloak")

    def test_route_without_host(self, make_cluster):
        cluster = make_cluster({"/apis/route.openshift.io/v1/namespaces/enmasse/routes/keycloak": {"spec": {}}})

        with pytest.raises(ClusterResourceNotFound):
            cluster.resolve_route("enmasse", "keycloak")

    def test_service_endpoint_named_port(self, make_cluster):
        cluster = make_cluster({
            "/api/v1/namespaces/enmasse/services/standard-authservice": {
                "spec": {
                    "clusterIP": "172.30.0.10",
                    "ports": [{"name": "http", "port": 8080}, {"name": "https", "port": 8443}],
                },
            },
        })

        endpoint = cluster.resolve_service_endpoint("enmasse", "standard-authservice", "https")

        assert endpoint == Endpoint("172.30.0.10", 8443)

    def test_service_without_port(self, make_cluster):
        cluster = make_cluster({
            "/api/v1/namespaces/enmasse/services/standard-authservice":
                {"spec": {"clusterIP": "172.30.0.10", "ports": [{"name": "http", "port": 8080}]}},
        })

        with pytest.raises(ClusterResourceNotFound, match="Unable to find port https"):
            cluster.resolve_service_endpoint("enmasse", "standard-authservice", "https")

    def test_secret_data(self, make_cluster):
        cluster = make_cluster({
            "/api/v1/namespaces/enmasse/secrets/keycloak-credentials":
                {"data": {"admin.username": b64("admin")}},
        })

        assert cluster.get_secret("enmasse", "keycloak-credentials") == {"admin.username": b64("admin")}
        assert cluster.get_secret("enmasse", "absent") is None

    def test_forbidden_raises(self, http):
        http.get.return_value = response(status=403, payload="forbidden")
        cluster = ClusterClient(ClusterConfig(server="https://api.example.com:6443"), session=http)

        with pytest.raises(ClusterAPIError) as excinfo:
            cluster.get_secret("enmasse", "keycloak-credentials")
        assert excinfo.value.status_code == 403
