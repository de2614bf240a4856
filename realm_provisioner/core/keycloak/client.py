"""Low-level HTTP client for Keycloak Admin API.

Handles authentication, token management, TLS trust and HTTP operations.
"""
from __future__ import annotations
import logging
from typing import Optional, Dict, Any
from datetime import datetime, timedelta

import requests

from ..trust import TrustMaterial
from .exceptions import KeycloakAPIError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
ADMIN_CLIENT_ID = "admin-cli"
MASTER_REALM = "master"


class KeycloakClient:
    """HTTP client for Keycloak Admin API with automatic token management.

    Features:
    - Automatic token refresh when expired
    - Centralized error handling
    - Connection pool owned by the client and released by close()

    Usage:
        with KeycloakClient("https://keycloak:8443/auth", trust=trust) as client:
            client.authenticate_admin("admin", "password")
            response = client.get("/admin/realms")
    """

    def __init__(
        self,
        base_url: str,
        *,
        trust: Optional[TrustMaterial] = None,
        client_id: str = ADMIN_CLIENT_ID,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize Keycloak client.

        Args:
            base_url: Keycloak server URL including context path (e.g. https://host:443/auth)
            trust: CA bundle used instead of the system store, hostname checks disabled
            client_id: OIDC client used for the password grant
            timeout: Per-request timeout in seconds
            session: Pre-built requests session (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.timeout = timeout
        self.session = session or requests.Session()
        if trust is not None:
            self.session.mount("https://", trust.adapter())
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._auth_params: Dict[str, Any] = {}
        self._closed = False

    def authenticate_admin(self, username: str, password: str, realm: str = MASTER_REALM) -> str:
        """Authenticate as admin user and store credentials for auto-refresh.

        Args:
            username: Admin username
            password: Admin password
            realm: Authentication realm (default: master)

        Returns:
            Access token
        """
        self._auth_params = {"username": username, "password": password, "realm": realm}
        self._token, expires_in = self._get_admin_token(username, password, realm)
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in)
        return self._token

    def _ensure_authenticated(self) -> None:
        """Ensure we have a valid token, refreshing if necessary."""
        if self._closed:
            raise RuntimeError("KeycloakClient is closed")
        if not self._token or not self._token_expires_at:
            raise KeycloakAPIError(401, "Not authenticated - call authenticate_admin first", "")

        # Refresh if token expired or expiring soon (within 10 seconds)
        if datetime.now() >= self._token_expires_at - timedelta(seconds=10):
            logger.debug("[session] Admin token expiring, refreshing")
            self.authenticate_admin(**self._auth_params)

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Execute an authenticated request against the admin API.

        Args:
            method: HTTP method
            path: API endpoint path (e.g., "/admin/realms/demo/users")
            **kwargs: Additional arguments for requests.Session.request

        Returns:
            Response object

        Raises:
            KeycloakAPIError: On HTTP error
        """
        self._ensure_authenticated()
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self._token}"

        resp = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        self._handle_error(resp)
        return resp

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Optional[Any] = None, **kwargs) -> requests.Response:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Optional[Any] = None, **kwargs) -> requests.Response:
        return self.request("PUT", path, json=json, **kwargs)

    def _get_admin_token(self, username: str, password: str, realm: str = MASTER_REALM) -> tuple[str, int]:
        """Obtain an admin token via direct access grant."""
        url = f"{self.base_url}/realms/{realm}/protocol/openid-connect/token"
        data = {
            "grant_type": "password",
            "client_id": self.client_id,
            "username": username,
            "password": password,
        }
        resp = self.session.post(url, data=data, timeout=self.timeout)
        if resp.status_code != 200:
            raise KeycloakAPIError(resp.status_code, resp.text, url)
        body = resp.json()
        return body["access_token"], int(body.get("expires_in", 60))

    def _handle_error(self, resp: requests.Response) -> None:
        """Centralized error handling for HTTP responses.

        Args:
            resp: Response object to check

        Raises:
            KeycloakAPIError: If response status indicates error
        """
        if resp.status_code >= 400:
            raise KeycloakAPIError(resp.status_code, resp.text, resp.url)

    def close(self) -> None:
        """Drop the token and release pooled connections. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._token = None
        self._auth_params = {}
        self.session.close()

    def __enter__(self) -> "KeycloakClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
