"""Pytest shared fixtures: an in-memory Keycloak admin API and fake clocks."""
import itertools
import pathlib
import sys
from contextlib import contextmanager
from types import SimpleNamespace
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from realm_provisioner.core.keycloak.exceptions import KeycloakAPIError
from realm_provisioner.core.models import Credentials, Endpoint
from realm_provisioner.core.provisioning_service import ProvisioningContext


# ─────────────────────────────────────────────────────────────────────────────
# Fake time
# ─────────────────────────────────────────────────────────────────────────────
class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ─────────────────────────────────────────────────────────────────────────────
# Fake Keycloak admin API
# ─────────────────────────────────────────────────────────────────────────────
class FakeResponse:
    def __init__(self, status_code: int, payload=None, url: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = "" if payload is None else str(payload)
        self.url = url

    def json(self):
        return self._payload


class FakeKeycloak:
    """Keeps realms, users, groups and memberships in memory.

    Behaves like the admin REST API the services call: user search is a
    substring match unless exact=true, usernames are stored in lower case,
    create answers 201 or 409, joins answer 204.
    """

    def __init__(self):
        self.realms = set()
        self.users = {}
        self.groups = {}
        self.memberships = set()
        self.calls = []
        self.failures = []
        self.realm_visible_after = {}
        self.reject_duplicate_join = False
        self.create_status: Optional[int] = None
        self.opened = 0
        self.closed = 0
        self._ids = itertools.count(1)

    # setup helpers
    def add_realm(self, realm: str, visible_after: int = 0) -> None:
        self.realms.add(realm)
        self.users.setdefault(realm, [])
        self.groups.setdefault(realm, [])
        if visible_after:
            self.realm_visible_after[realm] = visible_after

    def add_user(self, realm: str, username: str, password: str = "old") -> dict:
        user = {
            "id": f"user-{next(self._ids)}",
            "username": username.lower(),
            "enabled": True,
            "credentials": [{"type": "password", "value": password, "temporary": False}],
        }
        self.users[realm].append(user)
        return user

    def add_group(self, realm: str, name: str) -> dict:
        group = {"id": f"group-{next(self._ids)}", "name": name, "path": f"/{name}"}
        self.groups[realm].append(group)
        return group

    def group_names(self, realm: str) -> list:
        return [group["name"] for group in self.groups[realm]]

    def members_of(self, realm: str, group_name: str) -> set:
        group = next(g for g in self.groups[realm] if g["name"] == group_name)
        ids = {user_id for user_id, group_id in self.memberships if group_id == group["id"]}
        return {user["username"] for user in self.users[realm] if user["id"] in ids}

    def fail_with(self, *errors: Exception) -> None:
        """Raise these errors, one per request, before serving anything."""
        self.failures.extend(errors)

    # request handling
    def handle(self, method: str, path: str, params=None, json=None) -> FakeResponse:
        self.calls.append((method, path))
        if self.failures:
            raise self.failures.pop(0)
        parts = path.strip("/").split("/")
        # admin/realms[/{realm}/{collection}[/...]]
        if parts[:2] != ["admin", "realms"]:
            return FakeResponse(404, "unknown path", path)
        if len(parts) == 2 and method == "GET":
            return FakeResponse(200, self._visible_realms(), path)
        realm = parts[2]
        if realm not in self.realms:
            return FakeResponse(404, "Realm not found", path)
        rest = parts[3:]
        if rest == ["users"] and method == "GET":
            params = params or {}
            needle = params.get("username", "").lower()
            if params.get("exact") == "true":
                found = [u for u in self.users[realm] if u["username"] == needle]
            else:
                found = [u for u in self.users[realm] if needle in u["username"]]
            return FakeResponse(200, [dict(u) for u in found], path)
        if rest == ["users"] and method == "POST":
            if self.create_status is not None:
                return FakeResponse(self.create_status, "rejected", path)
            username = json["username"].lower()
            if any(u["username"] == username for u in self.users[realm]):
                return FakeResponse(409, "User exists with same username", path)
            user = dict(json, username=username, id=f"user-{next(self._ids)}")
            self.users[realm].append(user)
            return FakeResponse(201, None, path)
        if rest == ["groups"] and method == "GET":
            return FakeResponse(200, [dict(g) for g in self.groups[realm]], path)
        if rest == ["groups"] and method == "POST":
            if self.create_status is not None:
                return FakeResponse(self.create_status, "rejected", path)
            if json["name"] in self.group_names(realm):
                return FakeResponse(409, "Top level group named already exists.", path)
            self.add_group(realm, json["name"])
            return FakeResponse(201, None, path)
        if len(rest) == 4 and rest[0] == "users" and rest[2] == "groups" and method == "PUT":
            membership = (rest[1], rest[3])
            if membership in self.memberships and self.reject_duplicate_join:
                return FakeResponse(409, "already a member", path)
            self.memberships.add(membership)
            return FakeResponse(204, None, path)
        return FakeResponse(404, "unknown path", path)

    def _visible_realms(self) -> list:
        visible = []
        for realm in sorted(self.realms):
            remaining = self.realm_visible_after.get(realm, 0)
            if remaining:
                self.realm_visible_after[realm] = remaining - 1
                continue
            visible.append({"realm": realm})
        visible.append({"realm": "master"})
        return visible


class FakeAdminClient:
    """Stands in for KeycloakClient; raises KeycloakAPIError on >= 400 like the real one."""

    def __init__(self, server: FakeKeycloak):
        self.server = server

    def _send(self, method, path, params=None, json=None):
        resp = self.server.handle(method, path, params=params, json=json)
        if resp.status_code >= 400:
            raise KeycloakAPIError(resp.status_code, resp.text, path)
        return resp

    def get(self, path, params=None, **kwargs):
        return self._send("GET", path, params=params)

    def post(self, path, json=None, **kwargs):
        return self._send("POST", path, json=json)

    def put(self, path, json=None, **kwargs):
        return self._send("PUT", path, json=json)


@pytest.fixture
def keycloak():
    return FakeKeycloak()


@pytest.fixture
def admin_client(keycloak):
    return FakeAdminClient(keycloak)


@pytest.fixture
def session_factory(keycloak):
    """Session factory yielding FakeAdminClient and counting open/close pairs."""

    @contextmanager
    def factory(context):
        keycloak.opened += 1
        try:
            yield FakeAdminClient(keycloak)
        finally:
            keycloak.closed += 1

    return factory


@pytest.fixture
def context():
    return ProvisioningContext(
        endpoint=Endpoint("keycloak.example.com", 443),
        credentials=Credentials("admin", "admin-pass"),
    )


@pytest.fixture
def fake_cluster():
    """Cluster lookups backed by plain dictionaries."""
    calls = []

    def resolve_route(namespace, name):
        calls.append(("route", namespace, name))
        return f"{name}-{namespace}.apps.example.com"

    def resolve_service_endpoint(namespace, name, port_name):
        calls.append(("service", namespace, name, port_name))
        return Endpoint("172.30.0.10", 5443)

    def get_secret(namespace, name):
        calls.append(("secret", namespace, name))
        return None

    return SimpleNamespace(
        namespace="enmasse",
        calls=calls,
        resolve_route=resolve_route,
        resolve_service_endpoint=resolve_service_endpoint,
        get_secret=get_secret,
    )
