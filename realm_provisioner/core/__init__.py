"""Core convergence logic.

Module Structure:
    - retry.py               : Fixed-budget retry and DNS-aware retry helpers
    - models.py              : Endpoint and Credentials values
    - trust.py               : CA bundle handling for admin sessions
    - cluster/               : Endpoint and secret discovery in the cluster
    - keycloak/              : Keycloak Admin API client, sessions and services
    - provisioning_service.py: Idempotent user/group provisioning workflows

Usage Pattern:
    Import explicitly when needed:
        from realm_provisioner.core.provisioning_service import Provisioner
        from realm_provisioner.core.cluster import EndpointResolver
"""
