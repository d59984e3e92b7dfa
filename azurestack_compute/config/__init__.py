"""
Configuration documents for the provider engine.

Provides loading and validation of Terraform-JSON (or YAML) configuration
documents and the provider ``features`` block.
"""

from .loader import load_configuration, parse_configuration
from .models import (
    PROVIDER_NAME,
    ConfigurationDocument,
    Features,
    ProviderBlock,
    VirtualMachineFeatures,
    VirtualMachineScaleSetFeatures,
)

__all__ = [
    "PROVIDER_NAME",
    "ConfigurationDocument",
    "Features",
    "ProviderBlock",
    "VirtualMachineFeatures",
    "VirtualMachineScaleSetFeatures",
    "load_configuration",
    "parse_configuration",
]
