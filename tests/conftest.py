from typing import Any, Optional
from unittest.mock import MagicMock, Mock

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from azurestack_compute.config.models import Features
from azurestack_compute.handlers.context import ProviderContext

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"
RESOURCE_GROUP = "test-rg"
LOCATION = "local"
COMPUTE_PREFIX = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{RESOURCE_GROUP}"
    "/providers/Microsoft.Compute"
)
NIC_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{RESOURCE_GROUP}"
    "/providers/Microsoft.Network/networkInterfaces/test-nic"
)


def compute_id(*segments: str) -> str:
    """Build a Microsoft.Compute ID in the test resource group."""
    return COMPUTE_PREFIX + "".join(f"/{s}" for s in segments)


def make_poller(result: Any = None) -> Mock:
    """A finished long-running operation returning ``result``."""
    poller = Mock()
    poller.result = Mock(return_value=result)
    poller.done = Mock(return_value=True)
    return poller


def not_found(message: str = "Not Found") -> ResourceNotFoundError:
    return ResourceNotFoundError(message)


def api_error(message: str = "Internal Server Error", status_code: int = 500) -> HttpResponseError:
    error = HttpResponseError(message)
    error.status_code = status_code
    return error


# ============================================================================
# Provider Context Fixtures
# ============================================================================


@pytest.fixture
def compute_client() -> MagicMock:
    """Provide a mock ComputeManagementClient."""
    return MagicMock()


@pytest.fixture
def resource_client() -> MagicMock:
    """Provide a mock ResourceManagementClient."""
    return MagicMock()


@pytest.fixture
def features() -> Features:
    return Features()


@pytest.fixture
def context(compute_client, features) -> ProviderContext:
    """Provide a ProviderContext around the mock clients."""
    return ProviderContext(
        compute_client=compute_client,
        subscription_id=SUBSCRIPTION_ID,
        features=features,
    )


@pytest.fixture
def poller():
    """Factory fixture for finished pollers."""

    def _make(result: Optional[Any] = None) -> Mock:
        return make_poller(result)

    return _make
