"""Configuration helpers for the provisioner."""
from .settings import ProvisionerConfig, load_settings

__all__ = ["ProvisionerConfig", "load_settings"]
