"""
Azure client construction for Azure Stack Hub.

Builds the credential and the management clients used by the handlers from
an AzureStackConfig. Azure Stack exposes its own Resource Manager endpoint,
so every client is pointed at ``ARM_ENDPOINT`` and requests tokens for that
endpoint's audience.
"""

import logging
from typing import Any, Dict, Optional

from azure.core.credentials import TokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.resource import ResourceManagementClient

from .config.models import Features
from .config_manager import AzureStackConfig
from .handlers.context import ProviderContext

logger = logging.getLogger(__name__)


def build_credential(config: AzureStackConfig) -> TokenCredential:
    """
    Select the credential for the configured authentication method.

    A service principal is used when client ID, secret and tenant are all
    configured; otherwise DefaultAzureCredential (environment, managed
    identity, Azure CLI) is used.
    """
    kwargs: Dict[str, Any] = {}
    if config.authority_host:
        kwargs["authority"] = config.authority_host

    if config.uses_service_principal():
        logger.debug(f"Using service principal {config.client_id} for authentication")
        return ClientSecretCredential(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            client_secret=config.client_secret,
            **kwargs,
        )

    logger.debug("Using DefaultAzureCredential for authentication")
    return DefaultAzureCredential(**kwargs)


def _client_kwargs(config: AzureStackConfig) -> Dict[str, Any]:
    return {
        "base_url": config.arm_endpoint,
        "credential_scopes": [config.credential_scope()],
    }


def build_compute_client(
    config: AzureStackConfig, credential: Optional[TokenCredential] = None
) -> ComputeManagementClient:
    """Create the Compute management client for the configured subscription."""
    kwargs = _client_kwargs(config)
    if config.api_version:
        kwargs["api_version"] = config.api_version
    logger.debug(
        f"Creating ComputeManagementClient for subscription {config.subscription_id} "
        f"at {config.arm_endpoint}"
    )
    return ComputeManagementClient(
        credential or build_credential(config), config.subscription_id, **kwargs
    )


def build_resource_client(
    config: AzureStackConfig, credential: Optional[TokenCredential] = None
) -> ResourceManagementClient:
    """Create the generic Resource Manager client, used to look up network interfaces."""
    return ResourceManagementClient(
        credential or build_credential(config),
        config.subscription_id,
        **_client_kwargs(config),
    )


def build_provider_context(
    config: AzureStackConfig, features: Optional[Features] = None
) -> ProviderContext:
    """Build the context handed to every handler call.

    Args:
        config: Azure Stack connection settings
        features: The ``features`` block of the provider configuration
    """
    credential = build_credential(config)
    return ProviderContext(
        compute_client=build_compute_client(config, credential),
        subscription_id=config.subscription_id,
        features=features or Features(),
        resource_client=build_resource_client(config, credential),
    )
