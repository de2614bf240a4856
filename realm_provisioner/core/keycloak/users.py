"""Keycloak user management operations."""
from __future__ import annotations
import logging
from typing import List, Optional

from .client import KeycloakClient
from .exceptions import KeycloakAPIError, UserNotFoundError

logger = logging.getLogger(__name__)


def build_user(username: str, password: str) -> dict:
    """Return an enabled user representation with one permanent password."""
    return {
        "username": username,
        "enabled": True,
        "credentials": [
            {"type": "password", "value": password, "temporary": False},
        ],
    }


class UserService:
    """Service for managing Keycloak users."""

    def __init__(self, client: KeycloakClient):
        """Initialize user service.

        Args:
            client: Authenticated Keycloak client
        """
        self.client = client

    def search_users(self, realm: str, username: str, exact: bool = True) -> List[dict]:
        params = {"username": username}
        if exact:
            params["exact"] = "true"
        resp = self.client.get(f"/admin/realms/{realm}/users", params=params)
        return resp.json() or []

    def get_user_by_username(self, realm: str, username: str) -> Optional[dict]:
        """Return the user whose username matches, ignoring case.

        Keycloak stores usernames in lower case.

        Args:
            realm: Realm name
            username: Username to search for

        Returns:
            User representation or None if not found
        """
        for user in self.search_users(realm, username):
            if (user.get("username") or "").lower() == username.lower():
                return user
        return None

    def get_user_id(self, realm: str, username: str) -> str:
        """Resolve a username to its id.

        Raises:
            UserNotFoundError: If no user carries that username
        """
        user = self.get_user_by_username(realm, username)
        if user is None:
            raise UserNotFoundError(f"Unable to find user '{username}' in realm '{realm}'")
        return user["id"]

    def create_user(self, realm: str, representation: dict) -> None:
        """Submit a user representation.

        Raises:
            KeycloakAPIError: Unless Keycloak answers 201 Created
        """
        path = f"/admin/realms/{realm}/users"
        resp = self.client.post(path, json=representation)
        if resp.status_code != 201:
            raise KeycloakAPIError(resp.status_code, f"Unable to create user: {resp.text}", path)

    def ensure_user(self, realm: str, username: str, password: str) -> bool:
        """Create the user unless one with that username already exists.

        An existing user is left untouched, including its credentials.

        Returns:
            True if the user was created, False if it already existed
        """
        if self.get_user_by_username(realm, username) is not None:
            logger.info("[user] User '%s' already created, skipping", username)
            return False
        self.create_user(realm, build_user(username, password))
        logger.info("[user] User '%s' created in realm '%s'", username, realm)
        return True
