"""Command-line entry point for realm provisioning.

This module is a thin CLI wrapper around realm_provisioner.core services:
it resolves the Keycloak endpoint, admin credentials and CA bundle once,
then runs the selected workflow.
"""
from __future__ import annotations
import argparse
import logging
import sys
from typing import List, Optional

import requests

from .config import ProvisionerConfig, load_settings
from .core.cluster import (
    ClusterClient,
    ClusterConfigError,
    ClusterError,
    CredentialSource,
    EndpointResolver,
    load_cluster_config,
)
from .core.keycloak import KeycloakError
from .core.models import Credentials, Endpoint
from .core.provisioning_service import (
    FATAL_ERRORS,
    Provisioner,
    ProvisioningContext,
    normalize_operation,
)
from .core.retry import RetryPolicy, root_cause
from .core.trust import TrustMaterial

logger = logging.getLogger("realm_provisioner")

TIME_UNITS = {
    "NANOSECONDS": 1e-9,
    "MICROSECONDS": 1e-6,
    "MILLISECONDS": 1e-3,
    "SECONDS": 1.0,
    "MINUTES": 60.0,
    "HOURS": 3600.0,
    "DAYS": 86400.0,
}


def to_seconds(timeout: float, unit: str) -> float:
    """Convert ``timeout`` expressed in ``unit`` (e.g. MINUTES) to seconds."""
    try:
        return timeout * TIME_UNITS[unit.upper()]
    except KeyError:
        raise ValueError(f"Unknown time unit '{unit}'") from None


def build_parser(config: ProvisionerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Keycloak realm provisioner")
    parser.add_argument("-o", "--operation", required=True, help="create-user or check-realm")
    parser.add_argument("-H", "--host", default=config.keycloak_host or None, help="Keycloak host")
    parser.add_argument("--port", type=int, default=config.keycloak_port, help="Keycloak port")
    parser.add_argument("-t", "--timeout", type=float, default=1, help="Realm wait timeout")
    parser.add_argument("--timeunit", "-tu", type=str.upper, default="MINUTES",
                        choices=sorted(TIME_UNITS), help="Time unit for --timeout")
    parser.add_argument("--admin-username", default=config.admin_username or None)
    parser.add_argument("--admin-password", default=config.admin_password or None)
    parser.add_argument("-u", "--username", help="User to provision")
    parser.add_argument("-p", "--password", help="Password of the provisioned user")
    parser.add_argument("-r", "--realm", required=True, help="Target realm")
    parser.add_argument("-n", "--namespace", default=config.namespace or None, help="Platform namespace")
    parser.add_argument("--kubeconfig", default=config.kubeconfig or None)
    parser.add_argument("--ca-cert", help="PEM file trusted instead of the cluster CA secret")
    parser.add_argument("--system-ca", action="store_true",
                        help="Trust the system CA store instead of the cluster CA secret")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def open_cluster(args: argparse.Namespace, config: ProvisionerConfig) -> ClusterClient:
    return ClusterClient(
        load_cluster_config(args.kubeconfig),
        namespace=args.namespace,
        timeout=config.request_timeout,
    )


def resolve_context(args: argparse.Namespace, config: ProvisionerConfig) -> ProvisioningContext:
    """Resolve endpoint, credentials and trust material once for the whole run.

    The cluster is only contacted for what the command line does not supply.
    Without a CA file and without a reachable cluster configuration, the
    system CA store is trusted.
    """
    explicit_credentials = bool(args.admin_username and args.admin_password)
    explicit_trust = bool(args.ca_cert or args.system_ca)
    cluster: Optional[ClusterClient] = None
    if not args.host or not explicit_credentials:
        cluster = open_cluster(args, config)
    elif not explicit_trust:
        try:
            cluster = open_cluster(args, config)
        except ClusterConfigError as exc:
            logger.warning("[trust] No cluster configuration (%s), trusting the system CA store", exc)
    try:
        if args.host:
            endpoint = Endpoint(args.host, args.port)
        else:
            resolver = EndpointResolver(
                cluster,
                probe_attempts=config.probe_attempts,
                probe_delay=config.probe_delay,
            )
            endpoint = resolver.keycloak_endpoint()
        logger.info("[endpoint] Using keycloak endpoint %s", endpoint)

        if explicit_credentials:
            credentials = Credentials(args.admin_username, args.admin_password)
        else:
            credentials = CredentialSource(cluster).keycloak_credentials()
            if credentials is None:
                raise ClusterError("No admin credentials given and secret 'keycloak-credentials' not found")

        if args.ca_cert:
            trust = TrustMaterial.from_file(args.ca_cert)
        elif args.system_ca or cluster is None:
            trust = None
        else:
            trust = TrustMaterial.from_pem(CredentialSource(cluster).keycloak_ca())
    finally:
        if cluster is not None:
            cluster.close()

    return ProvisioningContext(
        endpoint=endpoint,
        credentials=credentials,
        trust=trust,
        context_path=config.keycloak_context_path,
        client_id=config.admin_client_id,
        request_timeout=config.request_timeout,
    )


def build_provisioner(context: ProvisioningContext, config: ProvisionerConfig) -> Provisioner:
    return Provisioner(
        context,
        retry=RetryPolicy(config.retry_attempts, config.retry_delay, fatal=FATAL_ERRORS),
        poll_interval=config.realm_poll_interval,
        dns_retries=config.dns_retries,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point. Returns the process exit code."""
    try:
        config = load_settings()
    except ValueError as exc:
        print(f"[settings] Error: {exc}", file=sys.stderr)
        return 1

    parser = build_parser(config)
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        # Unknown selectors fail before any cluster or Keycloak call
        normalize_operation(args.operation)
        timeout = to_seconds(args.timeout, args.timeunit)
        context = resolve_context(args, config)
        build_provisioner(context, config).run(
            args.operation, args.realm, timeout, username=args.username, password=args.password,
        )
    except (KeycloakError, ClusterError, requests.RequestException, ValueError, OSError) as exc:
        cause = root_cause(exc)
        if cause is not exc:
            logger.error("[%s] Error: %s (caused by %r)", args.operation, exc, cause)
        else:
            logger.error("[%s] Error: %s", args.operation, exc)
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
