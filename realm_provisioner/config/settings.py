"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = SECRETS_DIR / secret_name

    # Priority 1: Read from /run/secrets
    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.debug("[settings] Loaded %s from %s", secret_name, SECRETS_DIR)
                return secret_value
        except OSError as e:
            logger.warning("[settings] Failed to read %s: %s", secret_file, e)

    # Priority 2: Fallback to environment variable
    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            logger.debug("[settings] Loaded %s from environment (fallback)", env_var)
            return secret_value

    return None


def _env_int(var_name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(var_name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {var_name} must be an integer, got '{raw}'") from exc
    if value < minimum:
        raise ValueError(f"Environment variable {var_name} must be >= {minimum}, got {value}")
    return value


def _env_float(var_name: str, default: float) -> float:
    raw = os.environ.get(var_name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {var_name} must be a number, got '{raw}'") from exc
    if value < 0:
        raise ValueError(f"Environment variable {var_name} must not be negative, got {value}")
    return value


@dataclass
class ProvisionerConfig:
    """Provisioner configuration container."""
    # Cluster
    namespace: str = ""
    kubeconfig: str = ""

    # Keycloak
    keycloak_host: str = ""
    keycloak_port: int = 443
    keycloak_context_path: str = "/auth"
    admin_client_id: str = "admin-cli"
    request_timeout: float = 10.0

    # Admin credentials (empty: discover from cluster secret)
    admin_username: str = ""
    admin_password: str = ""

    # Convergence
    retry_attempts: int = 10
    retry_delay: float = 2.0
    dns_retries: int = 10
    realm_poll_interval: float = 5.0
    probe_attempts: int = 10
    probe_delay: float = 1.0


def load_settings() -> ProvisionerConfig:
    """Load provisioner settings from environment and /run/secrets."""
    return ProvisionerConfig(
        namespace=os.environ.get("PROVISIONER_NAMESPACE", ""),
        kubeconfig=os.environ.get("KUBECONFIG", ""),
        keycloak_host=os.environ.get("KEYCLOAK_HOST", ""),
        keycloak_port=_env_int("KEYCLOAK_PORT", 443, minimum=1),
        keycloak_context_path=os.environ.get("KEYCLOAK_CONTEXT_PATH", "/auth"),
        admin_client_id=os.environ.get("KEYCLOAK_ADMIN_CLIENT_ID", "admin-cli"),
        request_timeout=_env_float("KEYCLOAK_REQUEST_TIMEOUT", 10.0),
        admin_username=os.environ.get("KEYCLOAK_ADMIN", ""),
        admin_password=_load_secret_from_file("keycloak_admin_password", "KEYCLOAK_ADMIN_PASSWORD") or "",
        retry_attempts=_env_int("PROVISIONER_RETRY_ATTEMPTS", 10, minimum=1),
        retry_delay=_env_float("PROVISIONER_RETRY_DELAY", 2.0),
        dns_retries=_env_int("PROVISIONER_DNS_RETRIES", 10),
        realm_poll_interval=_env_float("PROVISIONER_REALM_POLL_INTERVAL", 5.0),
        probe_attempts=_env_int("PROVISIONER_PROBE_ATTEMPTS", 10, minimum=1),
        probe_delay=_env_float("PROVISIONER_PROBE_DELAY", 1.0),
    )
