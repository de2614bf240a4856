"""Keycloak realm discovery and waiting."""
from __future__ import annotations
import logging
import time
from typing import Callable, List, Optional

from ..retry import DEFAULT_DNS_RETRIES, retry_on_unknown_host
from .client import KeycloakClient
from .exceptions import RealmNotFoundTimeout

logger = logging.getLogger(__name__)

REALM_POLL_INTERVAL = 5.0


class RealmService:
    """Service for observing Keycloak realms."""

    def __init__(
        self,
        client: KeycloakClient,
        *,
        poll_interval: float = REALM_POLL_INTERVAL,
        dns_retries: int = DEFAULT_DNS_RETRIES,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize realm service.

        Args:
            client: Authenticated Keycloak client
            poll_interval: Seconds between realm lookups while waiting
            dns_retries: Retries granted to name-resolution failures per lookup
            clock: Monotonic clock (injectable for tests)
            sleep: Sleep function (injectable for tests)
        """
        self.client = client
        self.poll_interval = poll_interval
        self.dns_retries = dns_retries
        self._clock = clock
        self._sleep = sleep

    def list_realms(self) -> List[dict]:
        resp = self.client.get("/admin/realms")
        return resp.json() or []

    def lookup_realm(self, realm: str) -> Optional[dict]:
        """Return the realm representation if the realm list contains it.

        Only an exact name match in the enumeration counts as existence; a list
        without the name is a normal "not found", transport errors propagate.

        Args:
            realm: Realm name

        Returns:
            Realm representation or None if not listed
        """
        realms = retry_on_unknown_host(self.dns_retries, self.list_realms)
        for representation in realms:
            if representation.get("realm") == realm:
                return representation
        return None

    def realm_exists(self, realm: str) -> bool:
        return self.lookup_realm(realm) is not None

    def wait_for_realm(self, realm: str, timeout: float) -> dict:
        """Poll until the realm is listed or ``timeout`` seconds have elapsed.

        A final lookup runs after the deadline so a realm that appeared during
        the last sleep is not discarded.

        Args:
            realm: Realm name
            timeout: Wait bound in seconds

        Returns:
            Realm representation

        Raises:
            RealmNotFoundTimeout: If the realm never appeared
        """
        deadline = self._clock() + timeout
        while self._clock() < deadline:
            found = self.lookup_realm(realm)
            if found is not None:
                return found
            logger.debug("[realm] Realm '%s' not visible yet, polling again in %ss", realm, self.poll_interval)
            self._sleep(self.poll_interval)

        found = self.lookup_realm(realm)
        if found is not None:
            return found
        raise RealmNotFoundTimeout(realm, timeout)
