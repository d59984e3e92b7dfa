"""Managed Disk handler.

Handles: azurestack_managed_disk
API: Microsoft.Compute/disks
"""

import logging
from typing import Any, ClassVar, Dict, List, Optional, Set

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import (
    CreationData,
    Disk,
    DiskSku,
    DiskUpdate,
    EncryptionSettingsCollection,
    EncryptionSettingsElement,
    ImageDiskReference,
    KeyVaultAndKeyReference,
    KeyVaultAndSecretReference,
    SourceVault,
)

from ...exceptions import ResourceNotFoundError, SchemaValidationError, wrap_azure_exception
from ...resource_data import ResourceData
from ...resource_ids import ManagedDiskId, VirtualMachineId, validate_resource_id
from ...schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_STRING,
    Attribute,
    Schema,
    block,
    location_attribute,
    resource_group_name_attribute,
    tags_attribute,
)
from ...utils import location, tags
from ...utils.azure import enum_value, get_or_none, is_not_found, wait_for_completion
from ...utils.diff_suppress import case_difference
from ...validate import int_between, string_in_slice
from .. import handler
from ..base_handler import ResourceHandler
from ..context import ProviderContext
from .virtual_machine_power import deallocated_virtual_machine

logger = logging.getLogger(__name__)

STORAGE_ACCOUNT_TYPES = ["Standard_LRS", "Premium_LRS"]
CREATE_OPTIONS = ["Copy", "Empty", "FromImage", "Import"]


def encryption_settings_schema() -> Attribute:
    return block(
        {
            # Azure can change enabled from false to true but not back
            "enabled": Attribute(TYPE_BOOL, required=True, force_new=True),
            "disk_encryption_key": block(
                {
                    "secret_url": Attribute(TYPE_STRING, required=True),
                    "source_vault_id": Attribute(TYPE_STRING, required=True),
                },
                optional=True,
                max_items=1,
            ),
            "key_encryption_key": block(
                {
                    "key_url": Attribute(TYPE_STRING, required=True),
                    "source_vault_id": Attribute(TYPE_STRING, required=True),
                },
                optional=True,
                max_items=1,
            ),
        },
        optional=True,
        max_items=1,
    )


def expand_encryption_settings(settings: Dict[str, Any]) -> EncryptionSettingsCollection:
    element = EncryptionSettingsElement()

    disk_keys = settings.get("disk_encryption_key") or []
    if disk_keys:
        dek = disk_keys[0]
        element.disk_encryption_key = KeyVaultAndSecretReference(
            secret_url=dek["secret_url"],
            source_vault=SourceVault(id=dek["source_vault_id"]),
        )

    key_keys = settings.get("key_encryption_key") or []
    if key_keys:
        kek = key_keys[0]
        element.key_encryption_key = KeyVaultAndKeyReference(
            key_url=kek["key_url"],
            source_vault=SourceVault(id=kek["source_vault_id"]),
        )

    return EncryptionSettingsCollection(
        enabled=settings.get("enabled", False), encryption_settings=[element]
    )


def flatten_encryption_settings(
    collection: Optional[EncryptionSettingsCollection],
) -> List[Dict[str, Any]]:
    if collection is None:
        return []

    value: Dict[str, Any] = {"enabled": bool(collection.enabled)}
    for element in collection.encryption_settings or []:
        if element.disk_encryption_key is not None:
            key = element.disk_encryption_key
            value["disk_encryption_key"] = [
                {
                    "secret_url": key.secret_url,
                    "source_vault_id": key.source_vault.id if key.source_vault else "",
                }
            ]
        if element.key_encryption_key is not None:
            key = element.key_encryption_key
            value["key_encryption_key"] = [
                {
                    "key_url": key.key_url,
                    "source_vault_id": key.source_vault.id if key.source_vault else "",
                }
            ]
        break

    return [value]


def _storage_account_type(value: str) -> str:
    for candidate in STORAGE_ACCOUNT_TYPES:
        if candidate.lower() == value.lower():
            return candidate
    return value


@handler
class ManagedDiskHandler(ResourceHandler):
    """Handler for Managed Disks.

    Resizing or re-tiering a disk which is attached to a Virtual Machine
    deallocates the machine for the duration of the update.
    """

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_managed_disk"}
    ID_TYPE = ManagedDiskId

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(TYPE_STRING, required=True, force_new=True),
            "location": location_attribute(),
            "resource_group_name": resource_group_name_attribute(),
            "storage_account_type": Attribute(
                TYPE_STRING,
                required=True,
                validate=string_in_slice(STORAGE_ACCOUNT_TYPES),
                diff_suppress=case_difference,
            ),
            "encryption": encryption_settings_schema(),
            "disk_size_gb": Attribute(
                TYPE_INT, optional=True, computed=True, validate=int_between(1, 32767)
            ),
            "create_option": Attribute(
                TYPE_STRING,
                required=True,
                force_new=True,
                validate=string_in_slice(CREATE_OPTIONS),
            ),
            "hyper_v_generation": Attribute(
                TYPE_STRING,
                optional=True,
                force_new=True,
                validate=string_in_slice(["V1", "V2"]),
            ),
            "source_uri": Attribute(
                TYPE_STRING, optional=True, computed=True, force_new=True
            ),
            "source_resource_id": Attribute(TYPE_STRING, optional=True, force_new=True),
            "storage_account_id": Attribute(
                TYPE_STRING, optional=True, force_new=True, validate=validate_resource_id
            ),
            "image_reference_id": Attribute(TYPE_STRING, optional=True, force_new=True),
            "os_type": Attribute(
                TYPE_STRING,
                optional=True,
                validate=string_in_slice(["Windows", "Linux"], ignore_case=True),
            ),
            "tags": tags_attribute(),
        }

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        logger.info("[INFO] preparing arguments for Azure ARM Managed Disk creation.")
        client = context.compute_client.disks
        id = ManagedDiskId(
            context.subscription_id, d.get("resource_group_name"), d.get("name")
        )

        self.check_for_existing(id.id(), client.get, id.resource_group, id.disk_name)

        create_option = d.get("create_option")
        creation_data = CreationData(create_option=create_option)

        if create_option == "Import":
            source_uri = d.get("source_uri")
            if not source_uri:
                raise SchemaValidationError(
                    "`source_uri` must be specified when `create_option` is set to `Import`"
                )
            storage_account_id = d.get("storage_account_id")
            if not storage_account_id:
                raise SchemaValidationError(
                    "`storage_account_id` must be specified when `create_option` is set to `Import`"
                )
            creation_data.storage_account_id = storage_account_id
            creation_data.source_uri = source_uri

        if create_option == "Copy":
            source_resource_id = d.get("source_resource_id")
            if not source_resource_id:
                raise SchemaValidationError(
                    "`source_resource_id` must be specified when `create_option` is set to `Copy`"
                )
            creation_data.source_resource_id = source_resource_id

        if create_option == "FromImage":
            image_reference_id = d.get("image_reference_id")
            if not image_reference_id:
                raise SchemaValidationError(
                    "`image_reference_id` must be specified when `create_option` is set to `FromImage`"
                )
            creation_data.image_reference = ImageDiskReference(id=image_reference_id)

        disk = Disk(
            location=location.normalize(d.get("location")),
            sku=DiskSku(name=_storage_account_type(d.get("storage_account_type"))),
            creation_data=creation_data,
            tags=tags.expand(d.get("tags")),
        )
        if d.get("os_type"):
            disk.os_type = d.get("os_type")
        if d.get("disk_size_gb"):
            disk.disk_size_gb = d.get("disk_size_gb")
        encryption = d.get("encryption")
        if encryption:
            disk.encryption_settings_collection = expand_encryption_settings(encryption[0])
        if d.get("hyper_v_generation"):
            disk.hyper_v_generation = d.get("hyper_v_generation")

        try:
            poller = client.begin_create_or_update(id.resource_group, id.disk_name, disk)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "creating/updating", str(id)) from e
        wait_for_completion(poller, d.timeouts.create, f"create/update of {id}")

        d.set_id(id.id())
        self.read(d, context)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        logger.info("[INFO] preparing arguments for Azure ARM Managed Disk update.")
        client = context.compute_client.disks
        id = ManagedDiskId.parse(d.id)

        disk = get_or_none(
            "making Read request on", str(id), client.get, id.resource_group, id.disk_name
        )
        if disk is None:
            raise ResourceNotFoundError(f"{id} was not found", resource_id=id.id())

        disk_update = DiskUpdate()
        should_shut_down = False

        if d.has_change("tags"):
            disk_update.tags = tags.expand(d.get("tags"))

        if d.has_change("storage_account_type"):
            should_shut_down = True
            disk_update.sku = DiskSku(
                name=_storage_account_type(d.get("storage_account_type"))
            )

        if d.has_change("os_type"):
            disk_update.os_type = d.get("os_type")

        if d.has_change("disk_size_gb"):
            old, new = d.get_change("disk_size_gb")
            if new > (old or 0):
                should_shut_down = True
                disk_update.disk_size_gb = new
            else:
                raise SchemaValidationError(
                    "- New size must be greater than original size. "
                    "Shrinking disks is not supported on Azure"
                )

        # no point stopping anything when the disk isn't attached
        if should_shut_down and disk.managed_by:
            virtual_machine_id = VirtualMachineId.parse(disk.managed_by)
            with deallocated_virtual_machine(
                context.compute_client, virtual_machine_id, d.timeouts.update
            ):
                self._update_disk(client, id, disk_update, d.timeouts.update)
        else:
            self._update_disk(client, id, disk_update, d.timeouts.update)

        self.read(d, context)

    def _update_disk(
        self, client: Any, id: ManagedDiskId, disk_update: DiskUpdate, timeout: float
    ) -> None:
        try:
            poller = client.begin_update(id.resource_group, id.disk_name, disk_update)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "updating", str(id)) from e
        wait_for_completion(poller, timeout, f"update of {id}")

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.disks
        id = ManagedDiskId.parse(d.id)

        resp = get_or_none(
            "making Read request on",
            str(id),
            client.get,
            id.resource_group,
            id.disk_name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            logger.info(f"[INFO] Disk {d.id!r} does not exist - removing from state")
            d.set_id("")
            return

        d.set("name", resp.name or id.disk_name)
        d.set("resource_group_name", id.resource_group)
        d.set("location", location.normalize(resp.location))

        if resp.sku is not None:
            d.set("storage_account_type", enum_value(resp.sku.name))

        creation_data = resp.creation_data
        if creation_data is not None:
            d.set("create_option", enum_value(creation_data.create_option))
            if creation_data.image_reference is not None and creation_data.image_reference.id:
                d.set("image_reference_id", creation_data.image_reference.id)
            d.set("source_resource_id", creation_data.source_resource_id)
            d.set("source_uri", creation_data.source_uri)
            d.set("storage_account_id", creation_data.storage_account_id)

        d.set("disk_size_gb", resp.disk_size_gb)
        d.set("os_type", enum_value(resp.os_type))
        d.set("hyper_v_generation", enum_value(resp.hyper_v_generation))
        d.set("encryption", flatten_encryption_settings(resp.encryption_settings_collection))
        d.set("tags", tags.flatten(resp.tags))

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.disks
        id = ManagedDiskId.parse(d.id)

        try:
            poller = client.begin_delete(id.resource_group, id.disk_name)
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "deleting", str(id)) from e
        wait_for_completion(poller, d.timeouts.delete, f"deletion of {id}")
