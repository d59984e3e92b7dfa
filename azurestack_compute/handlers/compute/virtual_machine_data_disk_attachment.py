"""Virtual Machine Data Disk Attachment handler.

Handles: azurestack_virtual_machine_data_disk_attachment

An attachment is not an API object of its own: it is an entry in the
Virtual Machine's ``storage_profile.data_disks``, so every write re-sends
the whole Virtual Machine while holding its lock.
"""

import logging
from typing import Any, ClassVar, Optional, Set

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import DataDisk, ManagedDiskParameters

from ...exceptions import (
    AzureApiError,
    RequiresImportError,
    ResourceNotFoundError,
    wrap_azure_exception,
)
from ...locks import by_name
from ...resource_data import ResourceData
from ...resource_ids import DataDiskId, ManagedDiskId, VirtualMachineId, validate_resource_id
from ...schema import TYPE_BOOL, TYPE_INT, TYPE_STRING, Attribute, Schema
from ...utils.azure import enum_value, get_or_none, wait_for_completion
from ...utils.diff_suppress import case_difference
from ...validate import int_at_least, string_in_slice
from .. import handler
from ..base_handler import ResourceHandler
from ..context import ProviderContext
from .virtual_machine_power import VIRTUAL_MACHINE_RESOURCE_NAME

logger = logging.getLogger(__name__)


def _find_data_disk(virtual_machine: Any, name: str) -> Optional[DataDisk]:
    profile = virtual_machine.storage_profile
    if profile is None:
        return None
    # the name isn't (and shouldn't be) compared case-insensitively
    for disk in profile.data_disks or []:
        if disk.name == name:
            return disk
    return None


def _prepare_for_update(virtual_machine: Any) -> None:
    # identity and inline resources are rejected when re-sent as-is
    virtual_machine.identity = None
    virtual_machine.resources = None


@handler
class VirtualMachineDataDiskAttachmentHandler(ResourceHandler):
    """Handler for attaching Managed Disks to Virtual Machines."""

    HANDLED_TYPES: ClassVar[Set[str]] = {
        "azurestack_virtual_machine_data_disk_attachment"
    }
    ID_TYPE = DataDiskId

    @classmethod
    def schema(cls) -> Schema:
        return {
            "managed_disk_id": Attribute(
                TYPE_STRING,
                required=True,
                force_new=True,
                diff_suppress=case_difference,
                validate=validate_resource_id,
            ),
            "virtual_machine_id": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=validate_resource_id
            ),
            "lun": Attribute(TYPE_INT, required=True, force_new=True, validate=int_at_least(0)),
            "caching": Attribute(
                TYPE_STRING,
                required=True,
                diff_suppress=case_difference,
                validate=string_in_slice(["None", "ReadOnly", "ReadWrite"], ignore_case=True),
            ),
            "create_option": Attribute(
                TYPE_STRING,
                optional=True,
                force_new=True,
                default="Attach",
                diff_suppress=case_difference,
                validate=string_in_slice(["Attach", "Empty"], ignore_case=True),
            ),
            "write_accelerator_enabled": Attribute(TYPE_BOOL, optional=True, default=False),
        }

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        self._create_or_update(d, context, d.timeouts.create)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        self._create_or_update(d, context, d.timeouts.update)

    def _retrieve_managed_disk(self, context: ProviderContext, managed_disk_id: str) -> Any:
        id = ManagedDiskId.parse(managed_disk_id)
        disk = get_or_none(
            "making Read request on",
            str(id),
            context.compute_client.disks.get,
            id.resource_group,
            id.disk_name,
        )
        if disk is None:
            raise ResourceNotFoundError(f"{id} was not found!", resource_id=managed_disk_id)
        return disk

    def _create_or_update(
        self, d: ResourceData, context: ProviderContext, timeout: float
    ) -> None:
        client = context.compute_client.virtual_machines
        virtual_machine_id = VirtualMachineId.parse(d.get("virtual_machine_id"))

        with by_name(virtual_machine_id.name, VIRTUAL_MACHINE_RESOURCE_NAME):
            virtual_machine = get_or_none(
                "loading",
                str(virtual_machine_id),
                client.get,
                virtual_machine_id.resource_group,
                virtual_machine_id.name,
            )
            if virtual_machine is None:
                raise ResourceNotFoundError(
                    f"{virtual_machine_id} was not found",
                    resource_id=virtual_machine_id.id(),
                )

            managed_disk_id = d.get("managed_disk_id")
            managed_disk = self._retrieve_managed_disk(context, managed_disk_id)
            if managed_disk.sku is None:
                raise AzureApiError(
                    f"unable to determine Storage Account Type for Managed Disk {managed_disk_id!r}"
                )

            name = managed_disk.name
            id = DataDiskId(
                virtual_machine_id.subscription_id,
                virtual_machine_id.resource_group,
                virtual_machine_id.name,
                name,
            )

            expanded_disk = DataDisk(
                name=name,
                caching=d.get("caching"),
                create_option=d.get("create_option"),
                lun=d.get("lun"),
                managed_disk=ManagedDiskParameters(
                    id=managed_disk_id,
                    storage_account_type=enum_value(managed_disk.sku.name),
                ),
                write_accelerator_enabled=d.get("write_accelerator_enabled"),
            )

            disks = list(virtual_machine.storage_profile.data_disks or [])
            existing_index = next(
                (i for i, disk in enumerate(disks) if disk.name == name), -1
            )

            if d.is_new_resource():
                if existing_index != -1:
                    raise RequiresImportError(self.type_name, id.id())
                disks.append(expanded_disk)
            else:
                if existing_index == -1:
                    raise ResourceNotFoundError(
                        f"Unable to find Disk {name!r} attached to {virtual_machine_id}",
                        resource_id=id.id(),
                    )
                disks[existing_index] = expanded_disk

            virtual_machine.storage_profile.data_disks = disks
            _prepare_for_update(virtual_machine)

            # too many disks for the VM size is a 409 which is surfaced as-is
            try:
                poller = client.begin_create_or_update(
                    virtual_machine_id.resource_group, virtual_machine_id.name, virtual_machine
                )
            except HttpResponseError as e:
                raise wrap_azure_exception(
                    e, f"updating {virtual_machine_id} with Disk {name!r}"
                ) from e
            wait_for_completion(
                poller, timeout, f"{virtual_machine_id} to finish updating Disk {name!r}"
            )

        d.set_id(id.id())
        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machines
        id = DataDiskId.parse(d.id)

        virtual_machine = get_or_none(
            "loading",
            str(id),
            client.get,
            id.resource_group,
            id.virtual_machine_name,
            timeout=d.timeouts.read,
        )
        if virtual_machine is None:
            logger.debug(
                f"[DEBUG] {id.virtual_machine_id} was not found therefore Data Disk "
                "Attachment cannot exist - removing from state"
            )
            d.set_id("")
            return

        disk = _find_data_disk(virtual_machine, id.name)
        if disk is None:
            logger.debug(
                f"[DEBUG] Data Disk {id.name!r} was not found on {id.virtual_machine_id} "
                "- removing from state"
            )
            d.set_id("")
            return

        d.set("virtual_machine_id", id.virtual_machine_id.id())
        d.set("caching", enum_value(disk.caching))
        d.set("create_option", enum_value(disk.create_option))
        d.set("write_accelerator_enabled", bool(disk.write_accelerator_enabled))
        if disk.managed_disk is not None:
            d.set("managed_disk_id", disk.managed_disk.id)
        if disk.lun is not None:
            d.set("lun", disk.lun)

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machines
        id = DataDiskId.parse(d.id)

        with by_name(id.virtual_machine_name, VIRTUAL_MACHINE_RESOURCE_NAME):
            virtual_machine = get_or_none(
                "loading", str(id), client.get, id.resource_group, id.virtual_machine_name
            )
            if virtual_machine is None:
                logger.debug(f"[DEBUG] {id.virtual_machine_id} was not found - nothing to detach")
                return

            virtual_machine.storage_profile.data_disks = [
                disk
                for disk in virtual_machine.storage_profile.data_disks or []
                if disk.name != id.name
            ]
            _prepare_for_update(virtual_machine)

            try:
                poller = client.begin_create_or_update(
                    id.resource_group, id.virtual_machine_name, virtual_machine
                )
            except HttpResponseError as e:
                raise wrap_azure_exception(
                    e, f"removing Disk {id.name!r} from {id.virtual_machine_id}"
                ) from e
            wait_for_completion(
                poller,
                d.timeouts.delete,
                f"Disk {id.name!r} to be removed from {id.virtual_machine_id}",
            )
