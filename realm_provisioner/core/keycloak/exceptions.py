"""Keycloak-specific exceptions for error handling."""


class KeycloakError(Exception):
    """Base exception for all Keycloak operations."""
    pass


class KeycloakAPIError(KeycloakError):
    """HTTP error from Keycloak Admin API.
    
    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
    """
    
    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")


class PreconditionError(KeycloakError):
    """An entity that an earlier step should have produced is missing.

    Retrying cannot repair an ordering bug, so retry loops re-raise these
    immediately.
    """
    pass


class UserNotFoundError(PreconditionError):
    """User lookup failed - username does not exist."""
    pass


class GroupNotFoundError(PreconditionError):
    """Group does not exist in realm."""
    pass


class RealmNotFoundError(KeycloakError):
    """Realm does not exist."""
    pass


class RealmNotFoundTimeout(RealmNotFoundError, TimeoutError):
    """Realm did not become visible before the wait deadline.
    
    Attributes:
        realm: Realm name that was awaited
        timeout: Wait bound in seconds
    """

    def __init__(self, realm: str, timeout: float):
        self.realm = realm
        self.timeout = timeout
        super().__init__(f"Timed out waiting for realm '{realm}' to exist after {timeout:g}s")


class UnsupportedOperationError(KeycloakError):
    """Requested workflow selector is not recognised."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation '{operation}' is not supported")
