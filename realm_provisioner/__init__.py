"""Keycloak realm provisioner.

To run a workflow from the command line:
    realm-provisioner --operation create-user --realm demo --username alice --password secret

To use the convergence core directly:
    from realm_provisioner.core.provisioning_service import Provisioner
"""

__version__ = "0.1.0"
