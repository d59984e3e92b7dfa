"""Windows Virtual Machine handler.

Handles: azurestack_windows_virtual_machine
API: Microsoft.Compute/virtualMachines
"""

import logging
from typing import ClassVar, List, Set

from azure.mgmt.compute.models import (
    OSProfile,
    VirtualMachine,
    VirtualMachineUpdate,
    WindowsConfiguration,
)

from ...resource_data import ResourceData
from ...schema import TYPE_BOOL, TYPE_STRING, Attribute, Schema
from ...utils.azure import enum_value
from ...validate import (
    admin_password,
    string_in_slice,
    windows_admin_username,
    windows_computer_name,
)
from .. import handler
from .virtual_machine import VirtualMachineHandlerBase

logger = logging.getLogger(__name__)

LICENSE_TYPES = ["None", "Windows_Client", "Windows_Server"]

_validate_computer_name = windows_computer_name(15)


@handler
class WindowsVirtualMachineHandler(VirtualMachineHandlerBase):
    """Handler for Windows Virtual Machines."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_windows_virtual_machine"}
    OS_TYPE: ClassVar[str] = "Windows"

    @classmethod
    def schema(cls) -> Schema:
        schema = cls.base_schema()
        schema["admin_username"].validate = windows_admin_username
        schema.update(
            {
                "admin_password": Attribute(
                    TYPE_STRING,
                    required=True,
                    force_new=True,
                    sensitive=True,
                    validate=admin_password,
                ),
                "enable_automatic_updates": Attribute(
                    TYPE_BOOL, optional=True, default=True, force_new=True
                ),
                "license_type": Attribute(
                    TYPE_STRING, optional=True, validate=string_in_slice(LICENSE_TYPES)
                ),
                "timezone": Attribute(TYPE_STRING, optional=True, force_new=True),
            }
        )
        return schema

    def computer_name_errors(self, computer_name: str) -> List[str]:
        return _validate_computer_name(computer_name, "computer_name")

    def expand_os_profile(self, d: ResourceData, profile: OSProfile) -> None:
        windows = WindowsConfiguration(
            enable_automatic_updates=d.get("enable_automatic_updates"),
            provision_vm_agent=d.get("provision_vm_agent"),
        )
        timezone, ok = d.get_ok("timezone")
        if ok:
            windows.time_zone = timezone
        profile.windows_configuration = windows

    def flatten_os_profile(self, d: ResourceData, profile: OSProfile) -> None:
        windows = profile.windows_configuration
        if windows is None:
            return

        d.set("enable_automatic_updates", bool(windows.enable_automatic_updates))
        d.set("provision_vm_agent", bool(windows.provision_vm_agent))
        d.set("timezone", windows.time_zone or "")

    def customize_create(self, d: ResourceData, params: VirtualMachine) -> None:
        license_type, ok = d.get_ok("license_type")
        if ok:
            params.license_type = license_type

    def customize_update(self, d: ResourceData, update: VirtualMachineUpdate) -> bool:
        if not d.has_change("license_type"):
            return False
        # "None" removes a license which was set previously
        update.license_type = d.get("license_type") or "None"
        return True

    def customize_read(self, d: ResourceData, resp: VirtualMachine) -> None:
        d.set("license_type", enum_value(resp.license_type) or "")
