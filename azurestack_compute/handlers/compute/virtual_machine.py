"""Behaviour shared by the Linux and Windows Virtual Machine handlers.

The two resources only differ in their OS profile: authentication, computer
name rules and a handful of OS specific settings. Everything else (disks,
networking, power management for updates, deletion) lives here.
"""

import logging
from abc import abstractmethod
from typing import Any, ClassVar, Dict, List, Optional

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import (
    DiskUpdate,
    HardwareProfile,
    ManagedDiskParameters,
    NetworkInterfaceReference,
    NetworkProfile,
    OSDisk,
    OSProfile,
    StorageProfile,
    SubResource,
    VirtualMachine,
    VirtualMachineUpdate,
)

from ...exceptions import ResourceNotFoundError, SchemaValidationError, wrap_azure_exception
from ...locks import by_name
from ...resource_data import ResourceData
from ...resource_ids import (
    AvailabilitySetId,
    ManagedDiskId,
    VirtualMachineId,
    validate_id,
    validate_resource_id,
)
from ...schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_LIST,
    TYPE_STRING,
    Attribute,
    Schema,
    block,
    contains_unknown,
    location_attribute,
    resource_group_name_attribute,
    string_list,
    tags_attribute,
)
from ...utils import location, tags
from ...utils.azure import enum_value, get_or_none, is_not_found, wait_for_completion
from ...utils.diff_suppress import case_difference
from ...validate import int_between, string_in_slice, string_is_base64, string_is_not_empty
from ..base_handler import ResourceHandler
from ..context import ProviderContext
from .virtual_machine_power import VIRTUAL_MACHINE_RESOURCE_NAME, deallocated_virtual_machine
from .virtual_machine_shared import (
    CACHING_TYPES,
    STORAGE_ACCOUNT_TYPES,
    boot_diagnostics_schema,
    expand_boot_diagnostics,
    expand_source_image_reference,
    flatten_boot_diagnostics,
    flatten_source_image_id,
    flatten_source_image_reference,
    retrieve_connection_information,
    source_image_id_schema,
    source_image_reference_schema,
)

logger = logging.getLogger(__name__)


def virtual_machine_os_disk_schema() -> Attribute:
    return block(
        {
            "name": Attribute(TYPE_STRING, optional=True, computed=True, force_new=True),
            "caching": Attribute(
                TYPE_STRING,
                required=True,
                validate=string_in_slice(CACHING_TYPES),
            ),
            "storage_account_type": Attribute(
                TYPE_STRING,
                required=True,
                force_new=True,
                validate=string_in_slice(STORAGE_ACCOUNT_TYPES),
            ),
            "disk_size_gb": Attribute(
                TYPE_INT, optional=True, computed=True, validate=int_between(0, 4095)
            ),
            "write_accelerator_enabled": Attribute(TYPE_BOOL, optional=True, default=False),
        },
        required=True,
        max_items=1,
        min_items=1,
    )


def expand_virtual_machine_os_disk(config: List[Dict[str, Any]], os_type: str) -> OSDisk:
    raw = config[0]
    os_disk = OSDisk(
        caching=raw["caching"],
        create_option="FromImage",
        os_type=os_type,
        managed_disk=ManagedDiskParameters(storage_account_type=raw["storage_account_type"]),
        write_accelerator_enabled=raw.get("write_accelerator_enabled", False),
    )
    if raw.get("name"):
        os_disk.name = raw["name"]
    if raw.get("disk_size_gb"):
        os_disk.disk_size_gb = raw["disk_size_gb"]
    return os_disk


def flatten_virtual_machine_os_disk(os_disk: Optional[OSDisk]) -> List[Dict[str, Any]]:
    if os_disk is None:
        return []

    storage_account_type = ""
    if os_disk.managed_disk is not None:
        storage_account_type = enum_value(os_disk.managed_disk.storage_account_type) or ""

    return [
        {
            "name": os_disk.name or "",
            "caching": enum_value(os_disk.caching) or "",
            "storage_account_type": storage_account_type,
            "disk_size_gb": os_disk.disk_size_gb or 0,
            "write_accelerator_enabled": bool(os_disk.write_accelerator_enabled),
        }
    ]


def expand_network_interface_ids(ids: List[str]) -> NetworkProfile:
    # the first Network Interface is the Primary one
    return NetworkProfile(
        network_interfaces=[
            NetworkInterfaceReference(id=nic_id, primary=(i == 0))
            for i, nic_id in enumerate(ids)
        ]
    )


def flatten_network_interface_ids(profile: Optional[NetworkProfile]) -> List[str]:
    if profile is None:
        return []

    primary = []
    others = []
    for nic in profile.network_interfaces or []:
        if not nic.id:
            continue
        if nic.primary:
            primary.append(nic.id)
        else:
            others.append(nic.id)
    return primary + others


class VirtualMachineHandlerBase(ResourceHandler):
    """Base for the Linux and Windows Virtual Machine handlers.

    Subclasses declare ``OS_TYPE`` and build and flatten their half of the
    OS profile.
    """

    ID_TYPE = VirtualMachineId

    OS_TYPE: ClassVar[str] = ""

    @classmethod
    def base_schema(cls) -> Schema:
        return {
            "name": Attribute(TYPE_STRING, required=True, force_new=True),
            "resource_group_name": resource_group_name_attribute(),
            "location": location_attribute(),
            "size": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "admin_username": Attribute(TYPE_STRING, required=True, force_new=True),
            "network_interface_ids": Attribute(
                TYPE_LIST,
                required=True,
                min_items=1,
                elem=Attribute(TYPE_STRING, validate=validate_resource_id),
            ),
            "os_disk": virtual_machine_os_disk_schema(),
            "source_image_reference": source_image_reference_schema(force_new=True),
            "source_image_id": source_image_id_schema(force_new=True),
            "availability_set_id": Attribute(
                TYPE_STRING,
                optional=True,
                force_new=True,
                diff_suppress=case_difference,
                validate=validate_id(AvailabilitySetId),
            ),
            "boot_diagnostics": boot_diagnostics_schema(),
            "computer_name": Attribute(
                TYPE_STRING, optional=True, computed=True, force_new=True
            ),
            "custom_data": Attribute(
                TYPE_STRING,
                optional=True,
                force_new=True,
                sensitive=True,
                validate=string_is_base64,
            ),
            "provision_vm_agent": Attribute(
                TYPE_BOOL, optional=True, default=True, force_new=True
            ),
            "allow_extension_operations": Attribute(TYPE_BOOL, optional=True, default=True),
            "zone": Attribute(TYPE_STRING, optional=True, force_new=True),
            "tags": tags_attribute(),
            "private_ip_address": Attribute(TYPE_STRING, computed=True),
            "private_ip_addresses": string_list(computed=True),
            "public_ip_address": Attribute(TYPE_STRING, computed=True),
            "public_ip_addresses": string_list(computed=True),
            "virtual_machine_id": Attribute(TYPE_STRING, computed=True),
        }

    @abstractmethod
    def computer_name_errors(self, computer_name: str) -> List[str]:
        """Diagnostics for a computer name which this OS does not accept."""
        raise NotImplementedError

    @abstractmethod
    def expand_os_profile(self, d: ResourceData, profile: OSProfile) -> None:
        """Fill in the OS specific half of the OS profile for creation."""
        raise NotImplementedError

    @abstractmethod
    def flatten_os_profile(self, d: ResourceData, profile: OSProfile) -> None:
        """Set the OS specific attributes from the OS profile."""
        raise NotImplementedError

    def matches_os(self, virtual_machine: VirtualMachine) -> bool:
        """Whether an existing Virtual Machine runs the OS this resource manages."""
        profile = virtual_machine.os_profile
        if profile is None:
            return False
        if self.OS_TYPE == "Linux":
            return profile.linux_configuration is not None
        return profile.windows_configuration is not None

    def customize_update(
        self, d: ResourceData, update: VirtualMachineUpdate
    ) -> bool:
        """Add OS specific in-place changes; returns whether anything changed."""
        return False

    def customize_create(self, d: ResourceData, params: VirtualMachine) -> None:
        """Add OS specific top-level settings for creation."""

    def customize_read(self, d: ResourceData, resp: VirtualMachine) -> None:
        """Set OS specific top-level attributes."""

    def validate(self, d: ResourceData) -> List[str]:
        errors = []
        computer_name = d.get("computer_name")
        name = d.get("name")
        if not computer_name and not contains_unknown(name):
            name_errors = self.computer_name_errors(name)
            if name_errors:
                errors.append(
                    f"unable to assume default computer name {name_errors[0]}. Please "
                    "adjust the `name`, or specify an explicit `computer_name`"
                )
        elif computer_name and not contains_unknown(computer_name):
            errors.extend(self.computer_name_errors(computer_name))
        return errors

    def _computer_name(self, d: ResourceData) -> str:
        return d.get("computer_name") or d.get("name")

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machines
        id = VirtualMachineId(
            context.subscription_id, d.get("resource_group_name"), d.get("name")
        )

        self.check_for_existing(id.id(), client.get, id.resource_group, id.name)

        os_profile = OSProfile(
            admin_username=d.get("admin_username"),
            computer_name=self._computer_name(d),
            allow_extension_operations=d.get("allow_extension_operations"),
        )
        admin_password, ok = d.get_ok("admin_password")
        if ok:
            os_profile.admin_password = admin_password
        custom_data, ok = d.get_ok("custom_data")
        if ok:
            os_profile.custom_data = custom_data
        self.expand_os_profile(d, os_profile)

        params = VirtualMachine(
            location=location.normalize(d.get("location")),
            tags=tags.expand(d.get("tags")),
            hardware_profile=HardwareProfile(vm_size=d.get("size")),
            os_profile=os_profile,
            network_profile=expand_network_interface_ids(d.get("network_interface_ids")),
            storage_profile=StorageProfile(
                image_reference=expand_source_image_reference(
                    d.get("source_image_reference"), d.get("source_image_id")
                ),
                os_disk=expand_virtual_machine_os_disk(d.get("os_disk"), self.OS_TYPE),
            ),
            diagnostics_profile=expand_boot_diagnostics(d.get("boot_diagnostics")),
        )

        availability_set_id, ok = d.get_ok("availability_set_id")
        if ok:
            params.availability_set = SubResource(id=availability_set_id)

        zone, ok = d.get_ok("zone")
        if ok:
            params.zones = [zone]

        self.customize_create(d, params)

        logger.debug(f"[DEBUG] Creating {self.OS_TYPE} {id}..")
        try:
            poller = client.begin_create_or_update(id.resource_group, id.name, params)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, f"creating {self.OS_TYPE}", str(id)) from e
        wait_for_completion(poller, d.timeouts.create, f"creation of {self.OS_TYPE} {id}")
        logger.debug(f"[DEBUG] {self.OS_TYPE} {id} was created")

        d.set_id(id.id())
        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machines
        id = VirtualMachineId.parse(d.id)

        resp = get_or_none(
            f"retrieving {self.OS_TYPE}",
            str(id),
            client.get,
            id.resource_group,
            id.name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            self.not_found(d, id)
            return

        d.set("name", id.name)
        d.set("resource_group_name", id.resource_group)
        d.set("location", location.normalize(resp.location))
        d.set("zone", resp.zones[0] if resp.zones else "")
        d.set("virtual_machine_id", resp.vm_id)

        availability_set_id = ""
        if resp.availability_set is not None and resp.availability_set.id:
            availability_set_id = resp.availability_set.id
        d.set("availability_set_id", availability_set_id)

        if resp.hardware_profile is not None:
            d.set("size", enum_value(resp.hardware_profile.vm_size))

        d.set("boot_diagnostics", flatten_boot_diagnostics(resp.diagnostics_profile))

        network_interface_ids = flatten_network_interface_ids(resp.network_profile)
        d.set("network_interface_ids", network_interface_ids)

        if resp.os_profile is not None:
            # admin_password and custom_data aren't returned
            d.set("admin_username", resp.os_profile.admin_username)
            d.set("computer_name", resp.os_profile.computer_name)
            allow_extension_operations = resp.os_profile.allow_extension_operations
            d.set(
                "allow_extension_operations",
                True if allow_extension_operations is None else allow_extension_operations,
            )
            self.flatten_os_profile(d, resp.os_profile)

        if resp.storage_profile is not None:
            d.set("os_disk", flatten_virtual_machine_os_disk(resp.storage_profile.os_disk))
            d.set(
                "source_image_reference",
                flatten_source_image_reference(resp.storage_profile.image_reference),
            )
            d.set("source_image_id", flatten_source_image_id(resp.storage_profile.image_reference))

        d.set("tags", tags.flatten(resp.tags))
        self.customize_read(d, resp)

        if context.resource_client is not None:
            info = retrieve_connection_information(
                context.resource_client, network_interface_ids
            )
        else:
            logger.debug("[DEBUG] No Resource Manager client - skipping IP address lookup")
            info = None
        d.set("private_ip_address", info.private_ip_address if info else "")
        d.set("private_ip_addresses", info.private_ip_addresses if info else [])
        d.set("public_ip_address", info.public_ip_address if info else "")
        d.set("public_ip_addresses", info.public_ip_addresses if info else [])

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machines
        id = VirtualMachineId.parse(d.id)

        existing = get_or_none(
            f"retrieving {self.OS_TYPE}", str(id), client.get, id.resource_group, id.name
        )
        if existing is None:
            raise ResourceNotFoundError(f"{id} was not found", resource_id=id.id())

        should_deallocate = False
        should_update = False
        update = VirtualMachineUpdate()

        if d.has_change("size"):
            should_deallocate = True
            should_update = True
            update.hardware_profile = HardwareProfile(vm_size=d.get("size"))

        if d.has_change("os_disk.0.caching"):
            should_deallocate = True
            should_update = True
            os_disk = existing.storage_profile.os_disk
            os_disk.caching = d.get("os_disk.0.caching")
            update.storage_profile = StorageProfile(os_disk=os_disk)

        resize_os_disk = False
        if d.has_change("os_disk.0.disk_size_gb"):
            old, new = d.get_change("os_disk.0.disk_size_gb")
            if new < (old or 0):
                raise SchemaValidationError(
                    "- New size must be greater than original size. "
                    "Shrinking disks is not supported on Azure"
                )
            if new:
                should_deallocate = True
                resize_os_disk = True

        if d.has_change("boot_diagnostics"):
            should_update = True
            update.diagnostics_profile = expand_boot_diagnostics(d.get("boot_diagnostics"))

        if d.has_change("allow_extension_operations"):
            should_update = True
            update.os_profile = OSProfile(
                allow_extension_operations=d.get("allow_extension_operations")
            )

        if d.has_change("tags"):
            should_update = True
            update.tags = tags.expand(d.get("tags"))

        if self.customize_update(d, update):
            should_update = True

        if should_deallocate:
            logger.debug(f"[DEBUG] {id} needs to be deallocated to apply the update")
            with deallocated_virtual_machine(
                context.compute_client, id, d.timeouts.update
            ):
                if resize_os_disk:
                    self._resize_os_disk(d, context, existing, d.get("os_disk.0.disk_size_gb"))
                if should_update:
                    self._update_virtual_machine(client, id, update, d.timeouts.update)
        elif should_update:
            with by_name(id.name, VIRTUAL_MACHINE_RESOURCE_NAME):
                self._update_virtual_machine(client, id, update, d.timeouts.update)

        self.read(d, context)

    def _update_virtual_machine(
        self, client: Any, id: VirtualMachineId, update: VirtualMachineUpdate, timeout: float
    ) -> None:
        logger.debug(f"[DEBUG] Updating {self.OS_TYPE} {id}..")
        try:
            poller = client.begin_update(id.resource_group, id.name, update)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, f"updating {self.OS_TYPE}", str(id)) from e
        wait_for_completion(poller, timeout, f"update of {self.OS_TYPE} {id}")
        logger.debug(f"[DEBUG] Updated {self.OS_TYPE} {id}.")

    def _resize_os_disk(
        self,
        d: ResourceData,
        context: ProviderContext,
        existing: VirtualMachine,
        disk_size_gb: int,
    ) -> None:
        os_disk = existing.storage_profile.os_disk if existing.storage_profile else None
        if os_disk is None or os_disk.managed_disk is None or not os_disk.managed_disk.id:
            raise ResourceNotFoundError(
                f"unable to determine the OS Disk of {existing.id}", resource_id=existing.id
            )

        disk_id = ManagedDiskId.parse(os_disk.managed_disk.id)
        logger.debug(f"[DEBUG] Resizing OS Disk {disk_id} to {disk_size_gb}GB..")
        try:
            poller = context.compute_client.disks.begin_update(
                disk_id.resource_group,
                disk_id.disk_name,
                DiskUpdate(disk_size_gb=disk_size_gb),
            )
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "resizing OS Disk", str(disk_id)) from e
        wait_for_completion(poller, d.timeouts.update, f"resize of OS Disk {disk_id}")

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machines
        id = VirtualMachineId.parse(d.id)
        features = context.features.virtual_machine

        existing = get_or_none(
            f"retrieving {self.OS_TYPE}", str(id), client.get, id.resource_group, id.name
        )
        if existing is None:
            return

        with by_name(id.name, VIRTUAL_MACHINE_RESOURCE_NAME):
            # a Virtual Machine in a Failed state can't be powered off
            if (existing.provisioning_state or "").lower() != "failed":
                skip_shutdown = not features.graceful_shutdown
                logger.debug(
                    f"[DEBUG] Powering Off {self.OS_TYPE} {id} (skip shutdown {skip_shutdown}).."
                )
                try:
                    poller = client.begin_power_off(
                        id.resource_group, id.name, skip_shutdown=skip_shutdown
                    )
                except HttpResponseError as e:
                    if is_not_found(e):
                        return
                    raise wrap_azure_exception(
                        e, f"powering off {self.OS_TYPE}", str(id)
                    ) from e
                wait_for_completion(poller, d.timeouts.delete, f"power off of {id}")

            logger.debug(f"[DEBUG] Deleting {self.OS_TYPE} {id}..")
            try:
                poller = client.begin_delete(id.resource_group, id.name)
            except HttpResponseError as e:
                if is_not_found(e):
                    return
                raise wrap_azure_exception(e, f"deleting {self.OS_TYPE}", str(id)) from e
            wait_for_completion(poller, d.timeouts.delete, f"deletion of {self.OS_TYPE} {id}")

        if features.delete_os_disk_on_deletion:
            self._delete_os_disk(d, context, existing)
        else:
            logger.debug(
                f"[DEBUG] Skipping deleting the OS Disk of {id} since the feature is disabled"
            )

    def _delete_os_disk(
        self, d: ResourceData, context: ProviderContext, existing: VirtualMachine
    ) -> None:
        os_disk = existing.storage_profile.os_disk if existing.storage_profile else None
        if os_disk is None or os_disk.managed_disk is None or not os_disk.managed_disk.id:
            return

        disk_id = ManagedDiskId.parse(os_disk.managed_disk.id)
        logger.debug(f"[DEBUG] Deleting OS Disk {disk_id}..")
        try:
            poller = context.compute_client.disks.begin_delete(
                disk_id.resource_group, disk_id.disk_name
            )
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "deleting OS Disk", str(disk_id)) from e
        wait_for_completion(poller, d.timeouts.delete, f"deletion of OS Disk {disk_id}")

    def import_state(self, d: ResourceData, context: ProviderContext) -> None:
        """Reject Virtual Machines running the other OS."""
        client = context.compute_client.virtual_machines
        id = VirtualMachineId.parse(d.id)

        resp = get_or_none(
            f"retrieving {self.OS_TYPE}", str(id), client.get, id.resource_group, id.name
        )
        if resp is None:
            return

        if not self.matches_os(resp):
            raise SchemaValidationError(
                f"The {self.type_name!r} resource only supports {self.OS_TYPE} Virtual Machines"
            )
