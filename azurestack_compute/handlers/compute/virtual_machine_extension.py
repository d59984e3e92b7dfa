"""Virtual Machine Extension handler.

Handles: azurestack_virtual_machine_extension
API: Microsoft.Compute/virtualMachines/extensions
"""

import logging
from typing import ClassVar, Set

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import VirtualMachineExtension

from ...exceptions import AzureApiError, wrap_azure_exception
from ...resource_data import ResourceData
from ...resource_ids import VirtualMachineExtensionId, VirtualMachineId, validate_id
from ...schema import TYPE_BOOL, TYPE_STRING, Attribute, Schema, tags_attribute
from ...utils import settings, tags
from ...utils.azure import get_or_none, is_not_found, wait_for_completion
from ...utils.diff_suppress import json_equivalent
from ...validate import string_is_json
from .. import handler
from ..base_handler import ResourceHandler
from ..context import ProviderContext

logger = logging.getLogger(__name__)


@handler
class VirtualMachineExtensionHandler(ResourceHandler):
    """Handler for Virtual Machine Extensions.

    ``protected_settings`` are never returned by the API, so the value in
    state is always the one last applied.
    """

    HANDLED_TYPES: ClassVar[Set[str]] = {"azurestack_virtual_machine_extension"}
    ID_TYPE = VirtualMachineExtensionId

    @classmethod
    def schema(cls) -> Schema:
        return {
            "name": Attribute(TYPE_STRING, required=True, force_new=True),
            "virtual_machine_id": Attribute(
                TYPE_STRING,
                required=True,
                force_new=True,
                validate=validate_id(VirtualMachineId),
            ),
            "publisher": Attribute(TYPE_STRING, required=True, force_new=True),
            "type": Attribute(TYPE_STRING, required=True),
            "type_handler_version": Attribute(TYPE_STRING, required=True),
            "auto_upgrade_minor_version": Attribute(TYPE_BOOL, optional=True),
            "settings": Attribute(
                TYPE_STRING,
                optional=True,
                validate=string_is_json,
                diff_suppress=json_equivalent,
            ),
            "protected_settings": Attribute(
                TYPE_STRING,
                optional=True,
                sensitive=True,
                validate=string_is_json,
                diff_suppress=json_equivalent,
            ),
            "tags": tags_attribute(),
        }

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        self._create_or_update(d, context, d.timeouts.create)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        self._create_or_update(d, context, d.timeouts.update)

    def _create_or_update(
        self, d: ResourceData, context: ProviderContext, timeout: float
    ) -> None:
        extension_client = context.compute_client.virtual_machine_extensions
        vm_client = context.compute_client.virtual_machines

        virtual_machine_id = VirtualMachineId.parse(d.get("virtual_machine_id"))
        id = VirtualMachineExtensionId(
            virtual_machine_id.subscription_id,
            virtual_machine_id.resource_group,
            virtual_machine_id.name,
            d.get("name"),
        )

        try:
            virtual_machine = vm_client.get(id.resource_group, id.virtual_machine_name)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "getting", str(virtual_machine_id)) from e

        location = virtual_machine.location
        if not location:
            raise AzureApiError(f"reading location of {virtual_machine_id}")

        if d.is_new_resource():
            self.check_for_existing(
                id.id(),
                extension_client.get,
                id.resource_group,
                id.virtual_machine_name,
                id.extension_name,
            )

        extension = VirtualMachineExtension(
            location=location,
            publisher=d.get("publisher"),
            type_properties_type=d.get("type"),
            type_handler_version=d.get("type_handler_version"),
            auto_upgrade_minor_version=d.get("auto_upgrade_minor_version"),
            tags=tags.expand(d.get("tags")),
        )
        extension.settings = settings.expand(d.get("settings"), "settings")
        extension.protected_settings = settings.expand(
            d.get("protected_settings"), "protected_settings"
        )

        try:
            poller = extension_client.begin_create_or_update(
                id.resource_group, id.virtual_machine_name, id.extension_name, extension
            )
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "creating/updating", str(id)) from e
        wait_for_completion(poller, timeout, f"creation/update of {id}")

        d.set_id(id.id())
        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        extension_client = context.compute_client.virtual_machine_extensions
        vm_client = context.compute_client.virtual_machines
        id = VirtualMachineExtensionId.parse(d.id)

        virtual_machine = get_or_none(
            "making Read request on",
            str(id.virtual_machine_id),
            vm_client.get,
            id.resource_group,
            id.virtual_machine_name,
            timeout=d.timeouts.read,
        )
        if virtual_machine is None:
            self.not_found(d, id.virtual_machine_id)
            return
        d.set("virtual_machine_id", id.virtual_machine_id.id())

        resp = get_or_none(
            "making Read request on",
            str(id),
            extension_client.get,
            id.resource_group,
            id.virtual_machine_name,
            id.extension_name,
            timeout=d.timeouts.read,
        )
        if resp is None:
            self.not_found(d, id)
            return

        d.set("name", resp.name or id.extension_name)
        d.set("publisher", resp.publisher)
        d.set("type", resp.type_properties_type)
        d.set("type_handler_version", resp.type_handler_version)
        d.set("auto_upgrade_minor_version", resp.auto_upgrade_minor_version)
        if resp.settings is not None:
            d.set("settings", settings.flatten(resp.settings))
        d.set("tags", tags.flatten(resp.tags))

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_extensions
        id = VirtualMachineExtensionId.parse(d.id)

        try:
            poller = client.begin_delete(
                id.resource_group, id.virtual_machine_name, id.extension_name
            )
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, "deleting", str(id)) from e
        wait_for_completion(poller, d.timeouts.delete, f"deletion of {id}")
