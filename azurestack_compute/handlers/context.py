"""ProviderContext - Shared clients and settings passed to all handlers.

This module contains the ProviderContext dataclass that encapsulates the
Azure clients, the subscription and the provider features needed by
resource and data source handlers during a lifecycle operation.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from ..config.models import Features


@dataclass
class ProviderContext:
    """Shared context passed to all handlers.

    Usage:
        context = ProviderContext(
            compute_client=build_compute_client(config.azure),
            subscription_id=config.azure.subscription_id,
        )
        handler.create(d, context)
    """

    compute_client: Any
    subscription_id: str
    features: Features = field(default_factory=Features)

    # Generic Resource Manager client for lookups outside Microsoft.Compute
    resource_client: Optional[Any] = None
