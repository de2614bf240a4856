"""Short-lived authenticated admin sessions."""
from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from ..models import Credentials, Endpoint
from ..trust import TrustMaterial
from .client import ADMIN_CLIENT_ID, MASTER_REALM, REQUEST_TIMEOUT, KeycloakClient

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_PATH = "/auth"


def server_url(endpoint: Endpoint, context_path: str = DEFAULT_CONTEXT_PATH) -> str:
    """Return the Keycloak base URL for an endpoint, e.g. https://host:443/auth."""
    path = context_path.strip("/")
    base = f"https://{endpoint.host}:{endpoint.port}"
    return f"{base}/{path}" if path else base


def open_session(
    endpoint: Endpoint,
    credentials: Credentials,
    trust: Optional[TrustMaterial] = None,
    *,
    context_path: str = DEFAULT_CONTEXT_PATH,
    client_id: str = ADMIN_CLIENT_ID,
    timeout: float = REQUEST_TIMEOUT,
) -> KeycloakClient:
    """Log into the master realm and return an authenticated client.

    Connection and authentication failures propagate to the caller; a client
    that failed to authenticate is closed before the error leaves.
    """
    logger.info("[session] Logging into keycloak at %s as %s", endpoint, credentials.username)
    client = KeycloakClient(
        server_url(endpoint, context_path),
        trust=trust,
        client_id=client_id,
        timeout=timeout,
    )
    try:
        client.authenticate_admin(credentials.username, credentials.password, realm=MASTER_REALM)
    except BaseException:
        client.close()
        raise
    return client


def close_session(client: KeycloakClient) -> None:
    client.close()
    logger.debug("[session] Closed admin session")


@contextmanager
def admin_session(
    endpoint: Endpoint,
    credentials: Credentials,
    trust: Optional[TrustMaterial] = None,
    **kwargs,
) -> Iterator[KeycloakClient]:
    """Scoped admin session, released on every exit path.

    Usage:
        with admin_session(endpoint, credentials, trust) as client:
            RealmService(client).list_realms()
    """
    client = open_session(endpoint, credentials, trust, **kwargs)
    try:
        yield client
    finally:
        close_session(client)
