"""Keycloak Admin API client library.

Architecture:
- client.py: HTTP client with authentication and auto-refresh
- sessions.py: Scoped admin sessions against the master realm
- realm.py: Realm enumeration and waiting for a realm to appear
- users.py: User lookup and insert-if-absent creation
- groups.py: Group lookup, creation and membership
- exceptions.py: Typed exceptions for error handling

Usage:
    from realm_provisioner.core.keycloak import admin_session, UserService

    with admin_session(endpoint, credentials, trust) as client:
        UserService(client).ensure_user("demo", "alice", "secret")
"""
from .client import (
    KeycloakClient,
    REQUEST_TIMEOUT,
    ADMIN_CLIENT_ID,
    MASTER_REALM,
)
from .exceptions import (
    KeycloakError,
    KeycloakAPIError,
    PreconditionError,
    UserNotFoundError,
    GroupNotFoundError,
    RealmNotFoundError,
    RealmNotFoundTimeout,
    UnsupportedOperationError,
)
from .sessions import (
    admin_session,
    open_session,
    close_session,
    server_url,
    DEFAULT_CONTEXT_PATH,
)
from .realm import RealmService, REALM_POLL_INTERVAL
from .users import UserService, build_user
from .groups import GroupService

__all__ = [
    # Client
    "KeycloakClient",
    "REQUEST_TIMEOUT",
    "ADMIN_CLIENT_ID",
    "MASTER_REALM",

    # Exceptions
    "KeycloakError",
    "KeycloakAPIError",
    "PreconditionError",
    "UserNotFoundError",
    "GroupNotFoundError",
    "RealmNotFoundError",
    "RealmNotFoundTimeout",
    "UnsupportedOperationError",

    # Sessions
    "admin_session",
    "open_session",
    "close_session",
    "server_url",
    "DEFAULT_CONTEXT_PATH",

    # Services
    "RealmService",
    "REALM_POLL_INTERVAL",
    "UserService",
    "build_user",
    "GroupService",
]
