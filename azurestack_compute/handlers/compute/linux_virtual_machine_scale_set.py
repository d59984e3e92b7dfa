"""Linux Virtual Machine Scale Set handler.

Handles: azurestack_linux_virtual_machine_scale_set
API: Microsoft.Compute/virtualMachineScaleSets
"""

import logging
from typing import ClassVar, List, Set

from azure.mgmt.compute.models import (
    LinuxConfiguration,
    SshConfiguration,
    VirtualMachineScaleSetOSProfile,
    VirtualMachineScaleSetUpdateOSProfile,
)

from ...resource_data import ResourceData
from ...schema import TYPE_BOOL, TYPE_STRING, Attribute, Schema, contains_unknown
from ...utils.diff_suppress import admin_password as admin_password_diff_suppress
from ...validate import admin_password, linux_admin_username, linux_computer_name
from .. import handler
from .virtual_machine_scale_set import VirtualMachineScaleSetHandlerBase
from .virtual_machine_shared import (
    admin_ssh_key_required,
    expand_ssh_keys,
    flatten_ssh_keys,
    ssh_keys_schema,
)

logger = logging.getLogger(__name__)

# the instance index is appended to the prefix
_validate_computer_name_prefix = linux_computer_name(58)


@handler
class LinuxVirtualMachineScaleSetHandler(VirtualMachineScaleSetHandlerBase):
    """Handler for Linux Virtual Machine Scale Sets."""

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_linux_virtual_machine_scale_set"}
    OS_TYPE: ClassVar[str] = "Linux"

    @classmethod
    def schema(cls) -> Schema:
        schema = cls.base_schema()
        schema["admin_username"].validate = linux_admin_username
        schema.update(
            {
                "admin_password": Attribute(
                    TYPE_STRING,
                    optional=True,
                    force_new=True,
                    sensitive=True,
                    diff_suppress=admin_password_diff_suppress,
                    validate=admin_password,
                ),
                "admin_ssh_key": ssh_keys_schema(force_new=False),
                "disable_password_authentication": Attribute(
                    TYPE_BOOL, optional=True, default=True
                ),
            }
        )
        return schema

    def computer_name_prefix_errors(self, prefix: str) -> List[str]:
        return _validate_computer_name_prefix(prefix, "computer_name_prefix")

    def validate_os(self, d: ResourceData) -> List[str]:
        disable_password_authentication = d.get("disable_password_authentication")
        admin_password_value = d.get("admin_password")
        ssh_keys = d.get("admin_ssh_key")
        if contains_unknown([disable_password_authentication, admin_password_value, ssh_keys]):
            return []

        error = admin_ssh_key_required(
            disable_password_authentication, admin_password_value, ssh_keys
        )
        return [error] if error else []

    def expand_os_profile(self, d: ResourceData, profile: VirtualMachineScaleSetOSProfile) -> None:
        profile.linux_configuration = LinuxConfiguration(
            disable_password_authentication=d.get("disable_password_authentication"),
            provision_vm_agent=d.get("provision_vm_agent"),
            ssh=SshConfiguration(public_keys=expand_ssh_keys(d.get("admin_ssh_key"))),
        )

    def update_os_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetUpdateOSProfile
    ) -> bool:
        if not d.has_changes(
            "admin_ssh_key", "disable_password_authentication", "provision_vm_agent"
        ):
            return False

        linux = LinuxConfiguration()
        if d.has_change("admin_ssh_key"):
            linux.ssh = SshConfiguration(public_keys=expand_ssh_keys(d.get("admin_ssh_key")))
        if d.has_change("disable_password_authentication"):
            linux.disable_password_authentication = d.get("disable_password_authentication")
        if d.has_change("provision_vm_agent"):
            linux.provision_vm_agent = d.get("provision_vm_agent")
        profile.linux_configuration = linux
        return True

    def flatten_os_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetOSProfile, upgrade_mode: str
    ) -> None:
        linux = profile.linux_configuration
        if linux is None:
            return

        d.set("disable_password_authentication", bool(linux.disable_password_authentication))
        d.set("provision_vm_agent", bool(linux.provision_vm_agent))
        d.set("admin_ssh_key", flatten_ssh_keys(linux.ssh))
