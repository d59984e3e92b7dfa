"""Tests for handler registration and dispatch.

Test coverage:
- Every compute resource and data source type is registered
- Lookup is case-insensitive and kind-aware
- Registering a handler twice is a no-op
"""

import pytest

from azurestack_compute.handlers import KIND_DATA, KIND_RESOURCE, HandlerRegistry, handler
from azurestack_compute.handlers.base_handler import DataSourceHandler
from azurestack_compute.handlers.compute import (
    AvailabilitySetHandler,
    LinuxVirtualMachineScaleSetHandler,
    ManagedDiskHandler,
)
from azurestack_compute.handlers.data_sources import PlatformImageDataSource

RESOURCE_TYPES = [
    "azurestack_availability_set",
    "azurestack_image",
    "azurestack_linux_virtual_machine",
    "azurestack_linux_virtual_machine_scale_set",
    "azurestack_managed_disk",
    "azurestack_virtual_machine_data_disk_attachment",
    "azurestack_virtual_machine_extension",
    "azurestack_virtual_machine_scale_set_extension",
    "azurestack_windows_virtual_machine",
    "azurestack_windows_virtual_machine_scale_set",
]

DATA_SOURCE_TYPES = [
    "azurestack_availability_set",
    "azurestack_image",
    "azurestack_managed_disk",
    "azurestack_platform_image",
]


@pytest.fixture
def isolated_registry():
    """Snapshot the registry so a test can clear it."""
    handlers = HandlerRegistry._handlers.copy()
    cache = HandlerRegistry._type_cache.copy()
    yield HandlerRegistry
    HandlerRegistry._handlers = handlers
    HandlerRegistry._type_cache = cache


class TestRegistration:
    """Test handler registration and discovery."""

    def test_all_resource_types_registered(self):
        assert HandlerRegistry.get_all_supported_types(KIND_RESOURCE) == RESOURCE_TYPES

    def test_all_data_source_types_registered(self):
        assert HandlerRegistry.get_all_supported_types(KIND_DATA) == DATA_SOURCE_TYPES

    def test_get_handler_returns_instance(self):
        instance = HandlerRegistry.get_handler("azurestack_managed_disk")
        assert isinstance(instance, ManagedDiskHandler)

    def test_get_handler_is_case_insensitive(self):
        instance = HandlerRegistry.get_handler("AzureStack_Availability_Set")
        assert isinstance(instance, AvailabilitySetHandler)

    def test_kind_separates_resource_and_data(self):
        data = HandlerRegistry.get_handler("azurestack_platform_image", KIND_DATA)
        assert isinstance(data, PlatformImageDataSource)
        assert HandlerRegistry.get_handler("azurestack_platform_image") is None

    def test_unknown_type(self):
        assert HandlerRegistry.get_handler("azurestack_virtual_network") is None

    def test_type_name(self):
        assert (
            LinuxVirtualMachineScaleSetHandler().type_name
            == "azurestack_linux_virtual_machine_scale_set"
        )


class TestRegistryMutation:
    """Test registering and clearing handlers."""

    def test_register_is_idempotent(self, isolated_registry):
        before = len(isolated_registry.get_all_handlers())
        handler(AvailabilitySetHandler)
        assert len(isolated_registry.get_all_handlers()) == before

    def test_clear_and_register(self, isolated_registry):
        isolated_registry.clear()
        assert isolated_registry.get_all_handlers() == []

        @handler
        class ExampleDataSource(DataSourceHandler):
            HANDLED_TYPES = {"azurestack_example"}

            @classmethod
            def schema(cls):
                return {}

            def read(self, d, context):
                return None

        assert isolated_registry.get_all_supported_types(KIND_DATA) == ["azurestack_example"]
        assert isinstance(
            isolated_registry.get_handler("azurestack_example", KIND_DATA),
            ExampleDataSource,
        )
