"""Keycloak group management operations."""
from __future__ import annotations
import logging
from typing import List, Optional

from .client import KeycloakClient
from .exceptions import GroupNotFoundError, KeycloakAPIError

logger = logging.getLogger(__name__)


class GroupService:
    """Service for managing Keycloak groups."""

    def __init__(self, client: KeycloakClient):
        """Initialize group service.

        Args:
            client: Authenticated Keycloak client
        """
        self.client = client

    def list_groups(self, realm: str) -> List[dict]:
        resp = self.client.get(f"/admin/realms/{realm}/groups")
        return resp.json() or []

    def get_group_by_name(self, realm: str, group_name: str) -> Optional[dict]:
        """Return the top-level group whose name matches exactly.

        Names such as ``send_*`` are compared literally, never as patterns.

        Args:
            realm: Realm name
            group_name: Group name

        Returns:
            Group representation or None if not found
        """
        for group in self.list_groups(realm):
            if group.get("name") == group_name:
                return group
        return None

    def group_exists(self, realm: str, group_name: str) -> bool:
        return self.get_group_by_name(realm, group_name) is not None

    def get_group_id(self, realm: str, group_name: str) -> str:
        """Resolve a group name to its id.

        Raises:
            GroupNotFoundError: If the realm has no group with that name
        """
        group = self.get_group_by_name(realm, group_name)
        if group is None:
            raise GroupNotFoundError(f"Unable to find group '{group_name}' in realm '{realm}'")
        return group["id"]

    def create_group(self, realm: str, group_name: str) -> None:
        """Create a top-level group.

        Raises:
            KeycloakAPIError: Unless Keycloak answers 201 Created
        """
        path = f"/admin/realms/{realm}/groups"
        resp = self.client.post(path, json={"name": group_name})
        if resp.status_code != 201:
            raise KeycloakAPIError(resp.status_code, f"Unable to create group: {resp.text}", path)

    def ensure_group(self, realm: str, group_name: str) -> bool:
        """Idempotently create a group.

        Returns:
            True if the group was created, False if it already existed
        """
        if self.group_exists(realm, group_name):
            logger.info("[group] Group '%s' already exists, skipping", group_name)
            return False
        self.create_group(realm, group_name)
        logger.info("[group] Group '%s' created in realm '%s'", group_name, realm)
        return True

    def add_user_to_group(self, realm: str, user_id: str, group_id: str) -> bool:
        """Add a user to a group (idempotent).

        Keycloak answers 204 whether or not the membership already held; a 409
        from older servers or proxies also means "already a member".

        Args:
            realm: Realm name
            user_id: User ID
            group_id: Group ID

        Returns:
            True if added, False if already a member
        """
        try:
            self.client.put(f"/admin/realms/{realm}/users/{user_id}/groups/{group_id}")
        except KeycloakAPIError as exc:
            if exc.status_code == 409:
                return False
            raise
        return True
