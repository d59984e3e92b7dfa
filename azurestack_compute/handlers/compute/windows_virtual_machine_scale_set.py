"""Windows Virtual Machine Scale Set handler.

Handles: azurestack_windows_virtual_machine_scale_set
API: Microsoft.Compute/virtualMachineScaleSets
"""

import logging
from typing import Any, ClassVar, List, Set

from azure.mgmt.compute.models import (
    VirtualMachineScaleSetOSProfile,
    VirtualMachineScaleSetUpdateOSProfile,
    VirtualMachineScaleSetUpdateVMProfile,
    VirtualMachineScaleSetVMProfile,
    WindowsConfiguration,
)

from ...exceptions import SchemaValidationError
from ...resource_data import ResourceData
from ...schema import TYPE_BOOL, TYPE_STRING, Attribute, Schema
from ...utils.azure import enum_value
from ...utils.diff_suppress import admin_password as admin_password_diff_suppress
from ...validate import (
    admin_password,
    string_in_slice,
    windows_admin_username,
    windows_computer_name,
)
from .. import handler
from .virtual_machine_scale_set import UPGRADE_MODE_AUTOMATIC, VirtualMachineScaleSetHandlerBase
from .windows_virtual_machine import LICENSE_TYPES

logger = logging.getLogger(__name__)

_validate_computer_name_prefix = windows_computer_name(9)


def license_type_diff_suppress(old: Any, new: Any) -> bool:
    # an unset license is returned as "None"
    return (old == "None" and not new) or (not old and new == "None")


@handler
class WindowsVirtualMachineScaleSetHandler(VirtualMachineScaleSetHandlerBase):
    """Handler for Windows Virtual Machine Scale Sets."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_windows_virtual_machine_scale_set"}
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
                    diff_suppress=admin_password_diff_suppress,
                    validate=admin_password,
                ),
                "enable_automatic_updates": Attribute(TYPE_BOOL, optional=True, default=True),
                "license_type": Attribute(
                    TYPE_STRING,
                    optional=True,
                    diff_suppress=license_type_diff_suppress,
                    validate=string_in_slice(LICENSE_TYPES),
                ),
                "timezone": Attribute(TYPE_STRING, optional=True),
            }
        )
        return schema

    def computer_name_prefix_errors(self, prefix: str) -> List[str]:
        return _validate_computer_name_prefix(prefix, "computer_name_prefix")

    def expand_os_profile(self, d: ResourceData, profile: VirtualMachineScaleSetOSProfile) -> None:
        windows = WindowsConfiguration(
            enable_automatic_updates=d.get("enable_automatic_updates"),
            provision_vm_agent=d.get("provision_vm_agent"),
        )
        timezone, ok = d.get_ok("timezone")
        if ok:
            windows.time_zone = timezone
        profile.windows_configuration = windows

    def update_os_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetUpdateOSProfile
    ) -> bool:
        if not d.has_changes("enable_automatic_updates", "provision_vm_agent", "timezone"):
            return False

        windows = WindowsConfiguration()
        if d.has_change("enable_automatic_updates"):
            if d.get("upgrade_mode") == UPGRADE_MODE_AUTOMATIC:
                raise SchemaValidationError(
                    "`enable_automatic_updates` cannot be changed for when "
                    "`upgrade_mode` is `Automatic`"
                )
            windows.enable_automatic_updates = d.get("enable_automatic_updates")
        if d.has_change("provision_vm_agent"):
            windows.provision_vm_agent = d.get("provision_vm_agent")
        if d.has_change("timezone"):
            windows.time_zone = d.get("timezone")
        profile.windows_configuration = windows
        return True

    def flatten_os_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetOSProfile, upgrade_mode: str
    ) -> None:
        windows = profile.windows_configuration
        if windows is None:
            return

        # required as true on submission for Automatic upgrades but returned as
        # false, so it's left as configured for that mode
        if upgrade_mode != UPGRADE_MODE_AUTOMATIC:
            d.set("enable_automatic_updates", bool(windows.enable_automatic_updates))

        d.set("provision_vm_agent", bool(windows.provision_vm_agent))
        d.set("timezone", windows.time_zone or "")

    def customize_create(self, d: ResourceData, profile: VirtualMachineScaleSetVMProfile) -> None:
        license_type, ok = d.get_ok("license_type")
        if ok:
            profile.license_type = license_type

    def customize_update(
        self, d: ResourceData, profile: VirtualMachineScaleSetUpdateVMProfile
    ) -> None:
        if d.has_change("license_type"):
            # "None" removes a license which was set previously
            profile.license_type = d.get("license_type") or "None"

    def customize_read(self, d: ResourceData, profile: VirtualMachineScaleSetVMProfile) -> None:
        d.set("license_type", enum_value(profile.license_type) or "")
