"""Linux Virtual Machine handler.

Handles: azurestack_linux_virtual_machine
API: Microsoft.Compute/virtualMachines
"""

import logging
from typing import ClassVar, List, Set

from azure.mgmt.compute.models import LinuxConfiguration, OSProfile, SshConfiguration

from ...resource_data import ResourceData
from ...schema import TYPE_BOOL, TYPE_STRING, Attribute, Schema, contains_unknown
from ...validate import admin_password, linux_admin_username, linux_computer_name
from .. import handler
from .virtual_machine import VirtualMachineHandlerBase
from .virtual_machine_shared import (
    admin_ssh_key_required,
    expand_ssh_keys,
    flatten_ssh_keys,
    ssh_keys_schema,
)

logger = logging.getLogger(__name__)

_validate_computer_name = linux_computer_name(64)


@handler
class LinuxVirtualMachineHandler(VirtualMachineHandlerBase):
    """Handler for Linux Virtual Machines.

    Authentication is by SSH key, by password, or both; at least one of
    them must be enabled.
    """

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_linux_virtual_machine"}
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
                    validate=admin_password,
                ),
                "admin_ssh_key": ssh_keys_schema(force_new=True),
                "disable_password_authentication": Attribute(
                    TYPE_BOOL, optional=True, default=True, force_new=True
                ),
            }
        )
        return schema

    def computer_name_errors(self, computer_name: str) -> List[str]:
        return _validate_computer_name(computer_name, "computer_name")

    def validate(self, d: ResourceData) -> List[str]:
        errors = super().validate(d)

        disable_password_authentication = d.get("disable_password_authentication")
        admin_password_value = d.get("admin_password")
        ssh_keys = d.get("admin_ssh_key")
        if not contains_unknown([disable_password_authentication, admin_password_value, ssh_keys]):
            error = admin_ssh_key_required(
                disable_password_authentication, admin_password_value, ssh_keys
            )
            if error:
                errors.append(error)
        return errors

    def expand_os_profile(self, d: ResourceData, profile: OSProfile) -> None:
        profile.linux_configuration = LinuxConfiguration(
            disable_password_authentication=d.get("disable_password_authentication"),
            provision_vm_agent=d.get("provision_vm_agent"),
            ssh=SshConfiguration(public_keys=expand_ssh_keys(d.get("admin_ssh_key"))),
        )

    def flatten_os_profile(self, d: ResourceData, profile: OSProfile) -> None:
        linux = profile.linux_configuration
        if linux is None:
            return

        d.set("disable_password_authentication", bool(linux.disable_password_authentication))
        d.set("provision_vm_agent", bool(linux.provision_vm_agent))
        d.set("admin_ssh_key", flatten_ssh_keys(linux.ssh))
