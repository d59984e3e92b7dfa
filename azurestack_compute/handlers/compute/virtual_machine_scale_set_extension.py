"""Virtual Machine Scale Set Extension handler.

Handles: azurestack_virtual_machine_scale_set_extension
API: Microsoft.Compute/virtualMachineScaleSets/extensions
"""

import logging
from typing import ClassVar, Set

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import (
    VirtualMachineScaleSetExtension,
    VirtualMachineScaleSetExtensionUpdate,
)

from ...exceptions import wrap_azure_exception
from ...resource_data import ResourceData
from ...resource_ids import (
    VirtualMachineScaleSetExtensionId,
    VirtualMachineScaleSetId,
    validate_id,
)
from ...schema import TYPE_BOOL, TYPE_STRING, Attribute, Schema, string_list
from ...utils import settings
from ...utils.azure import get_or_none, is_not_found, wait_for_completion
from ...utils.diff_suppress import json_equivalent
from ...validate import string_is_json, string_is_not_empty
from .. import handler
from ..base_handler import ResourceHandler
from ..context import ProviderContext

logger = logging.getLogger(__name__)


@handler
class VirtualMachineScaleSetExtensionHandler(ResourceHandler):
    """Handler for extensions managed separately from their Scale Set."""

    HANDLED_TYPES: ClassVar[Set[str]] = {
        "azurestack_virtual_machine_scale_set_extension"
    }
    ID_TYPE = VirtualMachineScaleSetExtensionId

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=string_is_not_empty
            ),
            "virtual_machine_scale_set_id": Attribute(
                TYPE_STRING,
                required=True,
                force_new=True,
                validate=validate_id(VirtualMachineScaleSetId),
            ),
            "publisher": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=string_is_not_empty
            ),
            "type": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=string_is_not_empty
            ),
            "type_handler_version": Attribute(
                TYPE_STRING, required=True, validate=string_is_not_empty
            ),
            "auto_upgrade_minor_version": Attribute(TYPE_BOOL, optional=True, default=True),
            "force_update_tag": Attribute(TYPE_STRING, optional=True),
            "provision_after_extensions": string_list(optional=True),
            "protected_settings": Attribute(
                TYPE_STRING,
                optional=True,
                sensitive=True,
                validate=string_is_json,
                diff_suppress=json_equivalent,
            ),
            "settings": Attribute(
                TYPE_STRING,
                optional=True,
                validate=string_is_json,
                diff_suppress=json_equivalent,
            ),
        }

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_set_extensions

        scale_set_id = VirtualMachineScaleSetId.parse(d.get("virtual_machine_scale_set_id"))
        id = VirtualMachineScaleSetExtensionId(
            scale_set_id.subscription_id,
            scale_set_id.resource_group,
            scale_set_id.name,
            d.get("name"),
        )

        self.check_for_existing(
            id.id(),
            client.get,
            id.resource_group,
            id.virtual_machine_scale_set_name,
            id.extension_name,
        )

        extension = VirtualMachineScaleSetExtension(
            name=id.extension_name,
            publisher=d.get("publisher"),
            type_properties_type=d.get("type"),
            type_handler_version=d.get("type_handler_version"),
            auto_upgrade_minor_version=d.get("auto_upgrade_minor_version"),
            settings=settings.expand(d.get("settings"), "settings") or {},
            protected_settings=settings.expand(
                d.get("protected_settings"), "protected_settings"
            )
            or {},
        )
        force_update_tag, ok = d.get_ok("force_update_tag")
        if ok:
            extension.force_update_tag = force_update_tag
        provision_after, ok = d.get_ok("provision_after_extensions")
        if ok:
            extension.provision_after_extensions = provision_after

        try:
            poller = client.begin_create_or_update(
                id.resource_group,
                id.virtual_machine_scale_set_name,
                id.extension_name,
                extension,
            )
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "creating", str(id)) from e
        wait_for_completion(poller, d.timeouts.create, f"creation of {id}")

        d.set_id(id.id())
        self.read(d, context)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_set_extensions
        id = VirtualMachineScaleSetExtensionId.parse(d.id)

        # if this isn't specified it defaults to false
        extension = VirtualMachineScaleSetExtensionUpdate(
            auto_upgrade_minor_version=d.get("auto_upgrade_minor_version"),
        )

        if d.has_change("force_update_tag"):
            extension.force_update_tag = d.get("force_update_tag")

        if d.has_change("protected_settings"):
            extension.protected_settings = (
                settings.expand(d.get("protected_settings"), "protected_settings") or {}
            )

        if d.has_change("provision_after_extensions"):
            extension.provision_after_extensions = d.get("provision_after_extensions")

        if d.has_change("publisher"):
            extension.publisher = d.get("publisher")

        if d.has_change("settings"):
            extension.settings = settings.expand(d.get("settings"), "settings") or {}

        if d.has_change("type"):
            extension.type_properties_type = d.get("type")

        if d.has_change("type_handler_version"):
            extension.type_handler_version = d.get("type_handler_version")

        try:
            poller = client.begin_update(
                id.resource_group,
                id.virtual_machine_scale_set_name,
                id.extension_name,
                extension,
            )
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "updating", str(id)) from e
        wait_for_completion(poller, d.timeouts.update, f"update of {id}")

        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        vmss_client = context.compute_client.virtual_machine_scale_sets
        client = context.compute_client.virtual_machine_scale_set_extensions
        id = VirtualMachineScaleSetExtensionId.parse(d.id)

        scale_set = get_or_none(
            "retrieving",
            str(id.virtual_machine_scale_set_id),
            vmss_client.get,
            id.resource_group,
            id.virtual_machine_scale_set_name,
            timeout=d.timeouts.read,
        )
        if scale_set is None:
            logger.info(
                f"{id.virtual_machine_scale_set_id} was not found - removing Extension from state!"
            )
            d.set_id("")
            return

        resp = get_or_none(
            "retrieving",
            str(id),
            client.get,
            id.resource_group,
            id.virtual_machine_scale_set_name,
            id.extension_name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            logger.info(f"{id} was not found - removing from state!")
            d.set_id("")
            return

        d.set("name", id.extension_name)
        d.set("virtual_machine_scale_set_id", id.virtual_machine_scale_set_id.id())
        d.set("auto_upgrade_minor_version", resp.auto_upgrade_minor_version)
        d.set("force_update_tag", resp.force_update_tag)
        d.set("provision_after_extensions", resp.provision_after_extensions)
        d.set("publisher", resp.publisher)
        d.set("type", resp.type_properties_type)
        d.set("type_handler_version", resp.type_handler_version)
        d.set("settings", settings.flatten(resp.settings or None))

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_set_extensions
        id = VirtualMachineScaleSetExtensionId.parse(d.id)

        try:
            poller = client.begin_delete(
                id.resource_group, id.virtual_machine_scale_set_name, id.extension_name
            )
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "deleting", str(id)) from e
        wait_for_completion(poller, d.timeouts.delete, f"deletion of {id}")
