"""
Provisioning Service Layer: idempotent realm convergence

Drives a realm towards "user X exists, is enabled, has password Y and belongs
to the send_*, recv_* and manage groups". Every step is safe to rerun after a
partial failure or against a realm that is already provisioned.

Architecture:
    cli.py ──> Provisioner ──> RetryPolicy ──> admin_session ──> RealmService / UserService / GroupService ──> Keycloak

Features:
    - Each sub-operation runs under its own fixed-budget RetryPolicy
    - Each attempt opens and releases its own admin session
    - Missing users/groups at join time and realm wait timeouts are fatal
"""

from __future__ import annotations
import logging
import time
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .keycloak import (
    DEFAULT_CONTEXT_PATH,
    ADMIN_CLIENT_ID,
    REQUEST_TIMEOUT,
    REALM_POLL_INTERVAL,
    GroupService,
    KeycloakClient,
    PreconditionError,
    RealmNotFoundTimeout,
    RealmService,
    UnsupportedOperationError,
    UserService,
    admin_session,
)
from .models import Credentials, Endpoint
from .retry import DEFAULT_DELAY, DEFAULT_DNS_RETRIES, DEFAULT_MAX_ATTEMPTS, RetryPolicy
from .trust import TrustMaterial

logger = logging.getLogger(__name__)

SEND_GROUP = "send_*"
RECEIVE_GROUP = "recv_*"
MANAGE_GROUP = "manage"
DEFAULT_GROUPS = (SEND_GROUP, RECEIVE_GROUP, MANAGE_GROUP)

CREATE_USER = "CREATEUSER"
CHECK_REALM = "CHECKREALM"
OPERATIONS = (CREATE_USER, CHECK_REALM)

# Retrying cannot fix these
FATAL_ERRORS = (PreconditionError, RealmNotFoundTimeout)


@dataclass(frozen=True)
class ProvisioningContext:
    """Discovery results resolved once per invocation and shared by every session."""
    endpoint: Endpoint
    credentials: Credentials
    trust: Optional[TrustMaterial] = None
    context_path: str = DEFAULT_CONTEXT_PATH
    client_id: str = ADMIN_CLIENT_ID
    request_timeout: float = REQUEST_TIMEOUT


SessionFactory = Callable[[ProvisioningContext], AbstractContextManager]


def open_admin_session(context: ProvisioningContext) -> AbstractContextManager:
    return admin_session(
        context.endpoint,
        context.credentials,
        context.trust,
        context_path=context.context_path,
        client_id=context.client_id,
        timeout=context.request_timeout,
    )


def normalize_operation(operation: Optional[str]) -> str:
    """Map selectors such as ``create-user`` to ``CREATEUSER``.

    Raises:
        UnsupportedOperationError: If the selector names no known workflow
    """
    normalized = (operation or "").replace("-", "").replace("_", "").upper()
    if normalized not in OPERATIONS:
        raise UnsupportedOperationError(operation or "")
    return normalized


class Provisioner:
    """Idempotent provisioning workflows against one Keycloak endpoint.

    Usage:
        provisioner = Provisioner(ProvisioningContext(endpoint, credentials, trust))
        provisioner.create_user("demo", "alice", "secret", timeout=60)
    """

    def __init__(
        self,
        context: ProvisioningContext,
        *,
        retry: Optional[RetryPolicy] = None,
        session_factory: SessionFactory = open_admin_session,
        groups: Sequence[str] = DEFAULT_GROUPS,
        poll_interval: float = REALM_POLL_INTERVAL,
        dns_retries: int = DEFAULT_DNS_RETRIES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize provisioner.

        Args:
            context: Endpoint, admin credentials and trust material
            retry: Policy wrapping each sub-operation (10 attempts, 2s apart by default)
            session_factory: Builds the scoped admin session for one attempt
            groups: Groups every provisioned user joins, in order
            poll_interval: Seconds between realm lookups while waiting
            dns_retries: Name-resolution retries per realm lookup
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        self.context = context
        self.retry = retry or RetryPolicy(
            DEFAULT_MAX_ATTEMPTS, DEFAULT_DELAY, fatal=FATAL_ERRORS, sleep=sleep
        )
        self.session_factory = session_factory
        self.groups = tuple(groups)
        self.poll_interval = poll_interval
        self.dns_retries = dns_retries
        self._clock = clock
        self._sleep = sleep

    def _realms(self, client: KeycloakClient) -> RealmService:
        return RealmService(
            client,
            poll_interval=self.poll_interval,
            dns_retries=self.dns_retries,
            clock=self._clock,
            sleep=self._sleep,
        )

    def run(self, operation: str, realm: str, timeout: float,
            username: Optional[str] = None, password: Optional[str] = None) -> None:
        """Dispatch a workflow selector (``create-user`` or ``check-realm``).

        Raises:
            UnsupportedOperationError: Before any remote call, for unknown selectors
            ValueError: If create-user lacks a username or password
        """
        selected = normalize_operation(operation)
        if not realm:
            raise ValueError("A realm is required")
        if selected == CREATE_USER:
            if not username or not password:
                raise ValueError("create-user requires a username and a password")
            self.create_user(realm, username, password, timeout)
        else:
            self.check_realm_exists(realm, timeout)

    def check_realm_exists(self, realm: str, timeout: float) -> dict:
        """Wait up to ``timeout`` seconds for the realm in a single session.

        Raises:
            RealmNotFoundTimeout: If the realm never appears
        """
        with self.session_factory(self.context) as client:
            found = self._realms(client).wait_for_realm(realm, timeout)
        logger.info("[realm] Realm '%s' exists", realm)
        return found

    def ensure_user(self, realm: str, username: str, password: str, timeout: float) -> bool:
        """Create the user unless it already exists. Returns True if created."""
        def attempt() -> bool:
            with self.session_factory(self.context) as client:
                self._realms(client).wait_for_realm(realm, timeout)
                return UserService(client).ensure_user(realm, username, password)

        return self.retry.execute(attempt, f"ensure user '{username}'")

    def ensure_group(self, realm: str, group_name: str) -> bool:
        """Create the group unless it already exists. Returns True if created."""
        def attempt() -> bool:
            with self.session_factory(self.context) as client:
                return GroupService(client).ensure_group(realm, group_name)

        return self.retry.execute(attempt, f"ensure group '{group_name}'")

    def join_group(self, realm: str, group_name: str, username: str, timeout: float) -> bool:
        """Make ``username`` a member of ``group_name``.

        Raises:
            UserNotFoundError: If the user is missing (not retried)
            GroupNotFoundError: If the group is missing (not retried)
        """
        def attempt() -> bool:
            with self.session_factory(self.context) as client:
                self._realms(client).wait_for_realm(realm, timeout)
                user_id = UserService(client).get_user_id(realm, username)
                groups = GroupService(client)
                group_id = groups.get_group_id(realm, group_name)
                added = groups.add_user_to_group(realm, user_id, group_id)
            if added:
                logger.info("[group] User '%s' successfully joined group '%s'", username, group_name)
            else:
                logger.info("[group] User '%s' already in group '%s'", username, group_name)
            return added

        return self.retry.execute(attempt, f"join group '{group_name}'")

    def create_user(self, realm: str, username: str, password: str, timeout: float) -> None:
        """Provision a user and its group memberships.

        Groups are all created before the first join is attempted.
        """
        self.ensure_user(realm, username, password, timeout)
        for group_name in self.groups:
            self.ensure_group(realm, group_name)
        for group_name in self.groups:
            self.join_group(realm, group_name, username, timeout)
        logger.info("[user] User '%s' provisioned in realm '%s'", username, realm)
