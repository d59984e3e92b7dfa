"""Behaviour shared by the Linux and Windows Virtual Machine Scale Set handlers.

As with the Virtual Machine resources, only the OS profile differs between
the two; subclasses provide the OS half through a handful of hooks.
"""

import copy
import logging
from abc import abstractmethod
from typing import ClassVar, List, Optional

from azure.core.exceptions import HttpResponseError
from azure.mgmt.compute.models import (
    ApiEntityReference,
    BillingProfile,
    ScaleInPolicy,
    SecurityProfile,
    Sku,
    UpgradePolicy,
    VirtualMachineScaleSet,
    VirtualMachineScaleSetNetworkProfile,
    VirtualMachineScaleSetOSProfile,
    VirtualMachineScaleSetStorageProfile,
    VirtualMachineScaleSetUpdate,
    VirtualMachineScaleSetUpdateNetworkProfile,
    VirtualMachineScaleSetUpdateOSDisk,
    VirtualMachineScaleSetUpdateOSProfile,
    VirtualMachineScaleSetUpdateStorageProfile,
    VirtualMachineScaleSetUpdateVMProfile,
    VirtualMachineScaleSetVMInstanceRequiredIDs,
    VirtualMachineScaleSetVMProfile,
)

from ...exceptions import (
    AzureApiError,
    ResourceNotFoundError,
    SchemaValidationError,
    wrap_azure_exception,
)
from ...resource_data import ResourceData
from ...resource_ids import VirtualMachineScaleSetId, validate_resource_id
from ...schema import (
    TYPE_BOOL,
    TYPE_FLOAT,
    TYPE_INT,
    TYPE_STRING,
    Attribute,
    Schema,
    contains_unknown,
    location_attribute,
    resource_group_name_attribute,
    tags_attribute,
    timeouts_for,
    zones_attribute,
)
from ...utils import location, tags
from ...utils.azure import enum_value, get_or_none, is_not_found, wait_for_completion
from ...utils.diff_suppress import IMPORTED_ADMIN_PASSWORD
from ...validate import (
    extensions_time_budget,
    float_at_least,
    int_at_least,
    string_in_slice,
    string_is_base64,
    string_is_not_empty,
)
from ..base_handler import ResourceHandler
from ..context import ProviderContext
from .virtual_machine_scale_set_shared import (
    DEFAULT_EXTENSIONS_TIME_BUDGET,
    automatic_instance_repair_schema,
    automatic_os_upgrade_policy_schema,
    data_disk_schema,
    expand_automatic_os_upgrade_policy,
    expand_automatic_repairs_policy,
    expand_data_disks,
    expand_extensions,
    expand_network_interfaces,
    expand_network_interfaces_update,
    expand_os_disk,
    expand_os_disk_update,
    expand_rolling_upgrade_policy,
    expand_scheduled_events_profile,
    extensions_schema,
    flatten_automatic_os_upgrade_policy,
    flatten_automatic_repairs_policy,
    flatten_data_disks,
    flatten_extensions,
    flatten_network_interfaces,
    flatten_os_disk,
    flatten_rolling_upgrade_policy,
    flatten_scheduled_events_profile,
    network_interface_schema,
    os_disk_schema,
    rolling_upgrade_policy_schema,
    terminate_notification_schema,
)
from .virtual_machine_shared import (
    boot_diagnostics_schema,
    expand_boot_diagnostics,
    expand_source_image_reference,
    flatten_boot_diagnostics,
    flatten_source_image_id,
    flatten_source_image_reference,
    source_image_id_schema,
    source_image_reference_schema,
)

logger = logging.getLogger(__name__)

UPGRADE_MODE_AUTOMATIC = "Automatic"
UPGRADE_MODE_MANUAL = "Manual"
UPGRADE_MODE_ROLLING = "Rolling"

PRIORITY_REGULAR = "Regular"
PRIORITY_SPOT = "Spot"

SCALE_IN_POLICY_DEFAULT = "Default"


class VirtualMachineScaleSetHandlerBase(ResourceHandler):
    """Base for the Linux and Windows Virtual Machine Scale Set handlers.

    Subclasses declare ``OS_TYPE`` and implement the OS profile hooks:
    ``computer_name_prefix_errors``, ``expand_os_profile``,
    ``update_os_profile`` and ``flatten_os_profile``.
    """

    ID_TYPE = VirtualMachineScaleSetId
    TIMEOUTS = timeouts_for(update=60 * 60)

    OS_TYPE: ClassVar[str] = ""

    @classmethod
    def base_schema(cls) -> Schema:
        return {
            "name": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=string_is_not_empty
            ),
            "resource_group_name": resource_group_name_attribute(),
            "location": location_attribute(),
            "admin_username": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=string_is_not_empty
            ),
            "instances": Attribute(TYPE_INT, required=True, validate=int_at_least(0)),
            "sku": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "network_interface": network_interface_schema(),
            "os_disk": os_disk_schema(),
            "data_disk": data_disk_schema(),
            "source_image_reference": source_image_reference_schema(force_new=False),
            "source_image_id": source_image_id_schema(force_new=False),
            "automatic_os_upgrade_policy": automatic_os_upgrade_policy_schema(),
            "automatic_instance_repair": automatic_instance_repair_schema(),
            "boot_diagnostics": boot_diagnostics_schema(),
            "computer_name_prefix": Attribute(
                TYPE_STRING, optional=True, computed=True, force_new=True
            ),
            "custom_data": Attribute(
                TYPE_STRING, optional=True, sensitive=True, validate=string_is_base64
            ),
            "do_not_run_extensions_on_overprovisioned_machines": Attribute(
                TYPE_BOOL, optional=True, default=False
            ),
            "encryption_at_host_enabled": Attribute(TYPE_BOOL, optional=True),
            "eviction_policy": Attribute(
                TYPE_STRING,
                optional=True,
                force_new=True,
                validate=string_in_slice(["Deallocate", "Delete"]),
            ),
            "extension": extensions_schema(),
            "extensions_time_budget": Attribute(
                TYPE_STRING,
                optional=True,
                default=DEFAULT_EXTENSIONS_TIME_BUDGET,
                validate=extensions_time_budget,
            ),
            "health_probe_id": Attribute(
                TYPE_STRING, optional=True, validate=validate_resource_id
            ),
            "max_bid_price": Attribute(
                TYPE_FLOAT, optional=True, default=-1.0, validate=float_at_least(-1.0)
            ),
            "overprovision": Attribute(TYPE_BOOL, optional=True, default=True),
            "platform_fault_domain_count": Attribute(
                TYPE_INT, optional=True, computed=True, force_new=True
            ),
            "priority": Attribute(
                TYPE_STRING,
                optional=True,
                default=PRIORITY_REGULAR,
                force_new=True,
                validate=string_in_slice([PRIORITY_REGULAR, "Low", PRIORITY_SPOT]),
            ),
            "provision_vm_agent": Attribute(
                TYPE_BOOL, optional=True, default=True, force_new=True
            ),
            "rolling_upgrade_policy": rolling_upgrade_policy_schema(),
            "scale_in_policy": Attribute(
                TYPE_STRING,
                optional=True,
                default=SCALE_IN_POLICY_DEFAULT,
                validate=string_in_slice([SCALE_IN_POLICY_DEFAULT, "NewestVM", "OldestVM"]),
            ),
            "single_placement_group": Attribute(TYPE_BOOL, optional=True, default=True),
            "terminate_notification": terminate_notification_schema(),
            "upgrade_mode": Attribute(
                TYPE_STRING,
                optional=True,
                default=UPGRADE_MODE_MANUAL,
                force_new=True,
                validate=string_in_slice(
                    [UPGRADE_MODE_AUTOMATIC, UPGRADE_MODE_MANUAL, UPGRADE_MODE_ROLLING]
                ),
            ),
            "zone_balance": Attribute(TYPE_BOOL, optional=True, default=False, force_new=True),
            "zones": zones_attribute(),
            "tags": tags_attribute(),
            "unique_id": Attribute(TYPE_STRING, computed=True),
        }

    @abstractmethod
    def computer_name_prefix_errors(self, prefix: str) -> List[str]:
        """Diagnostics for a computer name prefix which this OS does not accept."""
        raise NotImplementedError

    @abstractmethod
    def expand_os_profile(self, d: ResourceData, profile: VirtualMachineScaleSetOSProfile) -> None:
        """Fill in the OS specific half of the OS profile for creation."""
        raise NotImplementedError

    @abstractmethod
    def update_os_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetUpdateOSProfile
    ) -> bool:
        """Add changed OS specific settings; returns whether anything changed."""
        raise NotImplementedError

    @abstractmethod
    def flatten_os_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetOSProfile, upgrade_mode: str
    ) -> None:
        """Set the OS specific attributes from the OS profile."""
        raise NotImplementedError

    def validate_os(self, d: ResourceData) -> List[str]:
        return []

    def customize_create(self, d: ResourceData, profile: VirtualMachineScaleSetVMProfile) -> None:
        """Add OS specific settings to the VM profile for creation."""

    def customize_update(
        self, d: ResourceData, profile: VirtualMachineScaleSetUpdateVMProfile
    ) -> None:
        """Add OS specific VM profile changes."""

    def customize_read(self, d: ResourceData, profile: VirtualMachineScaleSetVMProfile) -> None:
        """Set OS specific attributes from the VM profile."""

    def has_health_extension(self, d: ResourceData) -> bool:
        _, has_health_extension = expand_extensions(d.get("extension"))
        return has_health_extension

    def validate(self, d: ResourceData) -> List[str]:
        errors = []

        name = d.get("name")
        prefix = d.get("computer_name_prefix")
        if not prefix and not contains_unknown(name):
            prefix_errors = self.computer_name_prefix_errors(name)
            if prefix_errors:
                errors.append(
                    f"unable to assume default computer name prefix {prefix_errors[0]}. Please "
                    "adjust the `name`, or specify an explicit `computer_name_prefix`"
                )
        elif prefix and not contains_unknown(prefix):
            errors.extend(self.computer_name_prefix_errors(prefix))

        upgrade_mode = d.get("upgrade_mode")
        if not contains_unknown(upgrade_mode):
            if upgrade_mode != UPGRADE_MODE_AUTOMATIC and d.get("automatic_os_upgrade_policy"):
                errors.append(
                    "an `automatic_os_upgrade_policy` block cannot be specified when "
                    "`upgrade_mode` is not set to `Automatic`"
                )

            rolling_upgrade_policy = d.get("rolling_upgrade_policy")
            if (
                upgrade_mode not in (UPGRADE_MODE_AUTOMATIC, UPGRADE_MODE_ROLLING)
                and rolling_upgrade_policy
            ):
                errors.append(
                    "a `rolling_upgrade_policy` block cannot be specified when "
                    f"`upgrade_mode` is set to {upgrade_mode!r}"
                )
            if upgrade_mode == UPGRADE_MODE_ROLLING and not rolling_upgrade_policy:
                errors.append(
                    "a `rolling_upgrade_policy` block must be specified when "
                    f"`upgrade_mode` is set to {upgrade_mode!r}"
                )

            health_probe_id = d.get("health_probe_id")
            extensions = d.get("extension")
            if (
                upgrade_mode == UPGRADE_MODE_ROLLING
                and not contains_unknown([health_probe_id, extensions])
                and not health_probe_id
                and not self.has_health_extension(d)
            ):
                errors.append(
                    "`health_probe_id` must be set or a health extension must be specified "
                    f"when `upgrade_mode` is set to {upgrade_mode!r}"
                )

        priority = d.get("priority")
        if not contains_unknown(priority):
            max_bid_price = d.get("max_bid_price")
            if not contains_unknown(max_bid_price) and max_bid_price > 0 and priority != PRIORITY_SPOT:
                errors.append(
                    "`max_bid_price` can only be configured when `priority` is set to `Spot`"
                )

            eviction_policy = d.get("eviction_policy")
            if not contains_unknown(eviction_policy):
                if eviction_policy and priority != PRIORITY_SPOT:
                    errors.append(
                        "an `eviction_policy` can only be specified when `priority` is set to `Spot`"
                    )
                if not eviction_policy and priority == PRIORITY_SPOT:
                    errors.append(
                        "an `eviction_policy` must be specified when `priority` is set to `Spot`"
                    )

        zones = d.get("zones")
        if d.get("zone_balance") is True and not contains_unknown(zones) and not zones:
            errors.append("`zone_balance` can only be set to `true` when zones are specified")

        errors.extend(self.validate_os(d))
        return errors

    def create(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_sets
        id = VirtualMachineScaleSetId(
            context.subscription_id, d.get("resource_group_name"), d.get("name")
        )

        self.check_for_existing(id.id(), client.get, id.resource_group, id.name)

        # plan-time validation is skipped for values unknown until apply
        errors = self.validate(d)
        if errors:
            raise SchemaValidationError(errors[0], address=self.type_name, diagnostics=errors)

        network_profile = VirtualMachineScaleSetNetworkProfile(
            network_interface_configurations=expand_network_interfaces(
                d.get("network_interface")
            )
        )
        health_probe_id, ok = d.get_ok("health_probe_id")
        if ok:
            network_profile.health_probe = ApiEntityReference(id=health_probe_id)

        os_profile = VirtualMachineScaleSetOSProfile(
            admin_username=d.get("admin_username"),
            computer_name_prefix=d.get("computer_name_prefix") or id.name,
        )
        admin_password, ok = d.get_ok("admin_password")
        if ok:
            os_profile.admin_password = admin_password
        custom_data, ok = d.get_ok("custom_data")
        if ok:
            os_profile.custom_data = custom_data
        self.expand_os_profile(d, os_profile)

        priority = d.get("priority")
        profile = VirtualMachineScaleSetVMProfile(
            priority=priority,
            os_profile=os_profile,
            diagnostics_profile=expand_boot_diagnostics(d.get("boot_diagnostics")),
            network_profile=network_profile,
            storage_profile=VirtualMachineScaleSetStorageProfile(
                image_reference=expand_source_image_reference(
                    d.get("source_image_reference"), d.get("source_image_id")
                ),
                os_disk=expand_os_disk(d.get("os_disk"), self.OS_TYPE),
                data_disks=expand_data_disks(d.get("data_disk")),
            ),
        )

        extension_profile, _ = expand_extensions(d.get("extension"))
        budget, ok = d.get_ok("extensions_time_budget")
        if ok:
            extension_profile.extensions_time_budget = budget
        profile.extension_profile = extension_profile

        max_bid_price = d.get("max_bid_price")
        if max_bid_price and max_bid_price > 0:
            profile.billing_profile = BillingProfile(max_price=max_bid_price)

        eviction_policy, ok = d.get_ok("eviction_policy")
        if ok:
            profile.eviction_policy = eviction_policy

        terminate_notification, ok = d.get_ok("terminate_notification")
        if ok:
            profile.scheduled_events_profile = expand_scheduled_events_profile(
                terminate_notification
            )

        encryption_at_host, ok = d.get_ok("encryption_at_host_enabled")
        if ok:
            profile.security_profile = SecurityProfile(encryption_at_host=encryption_at_host)

        self.customize_create(d, profile)

        upgrade_mode = d.get("upgrade_mode")
        params = VirtualMachineScaleSet(
            location=location.normalize(d.get("location")),
            tags=tags.expand(d.get("tags")),
            # doesn't appear this can be set to anything else
            sku=Sku(name=d.get("sku"), tier="Standard", capacity=d.get("instances")),
            upgrade_policy=UpgradePolicy(
                mode=upgrade_mode,
                automatic_os_upgrade_policy=expand_automatic_os_upgrade_policy(
                    d.get("automatic_os_upgrade_policy")
                ),
                rolling_upgrade_policy=expand_rolling_upgrade_policy(
                    d.get("rolling_upgrade_policy")
                ),
            ),
            automatic_repairs_policy=expand_automatic_repairs_policy(
                d.get("automatic_instance_repair")
            ),
            do_not_run_extensions_on_overprovisioned_v_ms=d.get(
                "do_not_run_extensions_on_overprovisioned_machines"
            ),
            overprovision=d.get("overprovision"),
            single_placement_group=d.get("single_placement_group"),
            scale_in_policy=ScaleInPolicy(rules=[d.get("scale_in_policy")]),
            virtual_machine_profile=profile,
            zones=d.get("zones") or None,
        )

        platform_fault_domain_count, ok = d.get_ok("platform_fault_domain_count")
        if ok:
            params.platform_fault_domain_count = platform_fault_domain_count

        if d.get("zone_balance"):
            params.zone_balance = True

        logger.debug(f"[DEBUG] Creating {self.OS_TYPE} {id}..")
        try:
            poller = client.begin_create_or_update(id.resource_group, id.name, params)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, f"creating {self.OS_TYPE}", str(id)) from e
        wait_for_completion(poller, d.timeouts.create, f"creation of {self.OS_TYPE} {id}")
        logger.debug(f"[DEBUG] {id} was created")

        d.set_id(id.id())
        self.read(d, context)

    def read(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_sets
        id = VirtualMachineScaleSetId.parse(d.id)

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

        sku_name = ""
        instances = 0
        if resp.sku is not None:
            sku_name = resp.sku.name or ""
            instances = resp.sku.capacity or 0
        d.set("sku", sku_name)
        d.set("instances", instances)

        d.set(
            "automatic_instance_repair",
            flatten_automatic_repairs_policy(resp.automatic_repairs_policy),
        )
        d.set(
            "do_not_run_extensions_on_overprovisioned_machines",
            bool(resp.do_not_run_extensions_on_overprovisioned_v_ms),
        )
        d.set("overprovision", bool(resp.overprovision))
        d.set("platform_fault_domain_count", resp.platform_fault_domain_count or 0)
        d.set("single_placement_group", bool(resp.single_placement_group))
        d.set("unique_id", resp.unique_id or "")
        d.set("zone_balance", bool(resp.zone_balance))

        rule = SCALE_IN_POLICY_DEFAULT
        if resp.scale_in_policy is not None and resp.scale_in_policy.rules:
            rule = enum_value(resp.scale_in_policy.rules[0])
        d.set("scale_in_policy", rule)

        upgrade_mode = ""
        policy = resp.upgrade_policy
        if policy is not None:
            upgrade_mode = enum_value(policy.mode) or ""
            d.set("upgrade_mode", upgrade_mode)
            d.set(
                "automatic_os_upgrade_policy",
                flatten_automatic_os_upgrade_policy(policy.automatic_os_upgrade_policy),
            )
            d.set(
                "rolling_upgrade_policy",
                flatten_rolling_upgrade_policy(policy.rolling_upgrade_policy),
            )

        profile = resp.virtual_machine_profile
        if profile is not None:
            self._read_profile(d, profile, upgrade_mode)

        d.set("zones", resp.zones or [])
        d.set("tags", tags.flatten(resp.tags))

    def _read_profile(
        self, d: ResourceData, profile: VirtualMachineScaleSetVMProfile, upgrade_mode: str
    ) -> None:
        d.set("boot_diagnostics", flatten_boot_diagnostics(profile.diagnostics_profile))

        # BillingProfile isn't returned when it's unset
        max_bid_price = -1.0
        if profile.billing_profile is not None and profile.billing_profile.max_price is not None:
            max_bid_price = profile.billing_profile.max_price
        d.set("max_bid_price", max_bid_price)

        d.set("eviction_policy", enum_value(profile.eviction_policy) or "")

        # an empty priority is returned when it wasn't assigned on creation
        d.set("priority", enum_value(profile.priority) or PRIORITY_REGULAR)

        storage_profile = profile.storage_profile
        if storage_profile is not None:
            d.set("os_disk", flatten_os_disk(storage_profile.os_disk))
            d.set("data_disk", flatten_data_disks(storage_profile.data_disks))
            d.set(
                "source_image_reference",
                flatten_source_image_reference(storage_profile.image_reference),
            )
            d.set("source_image_id", flatten_source_image_id(storage_profile.image_reference))

        os_profile = profile.os_profile
        if os_profile is not None:
            # admin_password and custom_data aren't returned
            d.set("admin_username", os_profile.admin_username or "")
            d.set("computer_name_prefix", os_profile.computer_name_prefix or "")
            self.flatten_os_profile(d, os_profile, upgrade_mode)

        network_profile = profile.network_profile
        if network_profile is not None:
            d.set(
                "network_interface",
                flatten_network_interfaces(network_profile.network_interface_configurations),
            )
            health_probe_id = ""
            if network_profile.health_probe is not None and network_profile.health_probe.id:
                health_probe_id = network_profile.health_probe.id
            d.set("health_probe_id", health_probe_id)

        d.set(
            "terminate_notification",
            flatten_scheduled_events_profile(profile.scheduled_events_profile),
        )

        d.set("extension", flatten_extensions(profile.extension_profile, d.get("extension")))

        budget = DEFAULT_EXTENSIONS_TIME_BUDGET
        if profile.extension_profile is not None and profile.extension_profile.extensions_time_budget:
            budget = profile.extension_profile.extensions_time_budget
        d.set("extensions_time_budget", budget)

        encryption_at_host = False
        if profile.security_profile is not None:
            encryption_at_host = bool(profile.security_profile.encryption_at_host)
        d.set("encryption_at_host_enabled", encryption_at_host)

        self.customize_read(d, profile)

    def update(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_sets
        id = VirtualMachineScaleSetId.parse(d.id)

        existing = get_or_none(
            f"retrieving {self.OS_TYPE}", str(id), client.get, id.resource_group, id.name
        )
        if existing is None:
            raise ResourceNotFoundError(f"{id} was not found", resource_id=id.id())
        existing_profile = existing.virtual_machine_profile
        if existing_profile is None or existing_profile.storage_profile is None:
            raise AzureApiError(
                f"retrieving {id}: `properties.virtualMachineProfile.storageProfile` was nil",
                resource_id=id.id(),
            )
        existing_storage = existing_profile.storage_profile

        update_instances = False

        # the API rejects updates without the image reference and, for
        # Automatic and Rolling modes, without the upgrade policy
        profile = VirtualMachineScaleSetUpdateVMProfile(
            storage_profile=VirtualMachineScaleSetUpdateStorageProfile(
                image_reference=existing_storage.image_reference
            )
        )
        update = VirtualMachineScaleSetUpdate(
            upgrade_policy=existing.upgrade_policy,
            virtual_machine_profile=profile,
        )

        if d.has_changes("automatic_os_upgrade_policy", "rolling_upgrade_policy"):
            if existing.upgrade_policy is None:
                upgrade_policy = UpgradePolicy(mode=d.get("upgrade_mode"))
            else:
                upgrade_policy = copy.deepcopy(existing.upgrade_policy)
                upgrade_policy.mode = d.get("upgrade_mode")

            if d.has_change("automatic_os_upgrade_policy"):
                upgrade_policy.automatic_os_upgrade_policy = expand_automatic_os_upgrade_policy(
                    d.get("automatic_os_upgrade_policy")
                )
            if d.has_change("rolling_upgrade_policy"):
                upgrade_policy.rolling_upgrade_policy = expand_rolling_upgrade_policy(
                    d.get("rolling_upgrade_policy")
                )
            update.upgrade_policy = upgrade_policy

        if d.has_change("max_bid_price"):
            if d.get("priority") != PRIORITY_SPOT:
                raise SchemaValidationError(
                    "`max_bid_price` can only be configured when `priority` is set to `Spot`"
                )
            profile.billing_profile = BillingProfile(max_price=d.get("max_bid_price"))

        if d.has_change("single_placement_group"):
            update.single_placement_group = d.get("single_placement_group")

        os_profile = VirtualMachineScaleSetUpdateOSProfile()
        os_profile_changed = self.update_os_profile(d, os_profile)
        if d.has_change("custom_data"):
            update_instances = True
            os_profile_changed = True
            # custom_data can't be removed without recreating the scale set
            custom_data, ok = d.get_ok("custom_data")
            if ok:
                os_profile.custom_data = custom_data
        if os_profile_changed:
            profile.os_profile = os_profile

        if d.has_changes("data_disk", "os_disk", "source_image_id", "source_image_reference"):
            update_instances = True
            storage = profile.storage_profile

            if d.has_change("data_disk"):
                storage.data_disks = expand_data_disks(d.get("data_disk"))

            if d.has_change("os_disk"):
                storage.os_disk = expand_os_disk_update(d.get("os_disk"))

            if d.has_changes("source_image_id", "source_image_reference"):
                # the whole storage profile has to be sent when changing the image
                existing_os_disk = existing_storage.os_disk
                storage.image_reference = expand_source_image_reference(
                    d.get("source_image_reference"), d.get("source_image_id")
                )
                storage.data_disks = existing_storage.data_disks
                storage.os_disk = VirtualMachineScaleSetUpdateOSDisk(
                    caching=existing_os_disk.caching,
                    write_accelerator_enabled=existing_os_disk.write_accelerator_enabled,
                    disk_size_gb=existing_os_disk.disk_size_gb,
                    image=existing_os_disk.image,
                    vhd_containers=existing_os_disk.vhd_containers,
                    managed_disk=existing_os_disk.managed_disk,
                )

        if d.has_change("network_interface"):
            network_profile = VirtualMachineScaleSetUpdateNetworkProfile(
                network_interface_configurations=expand_network_interfaces_update(
                    d.get("network_interface")
                )
            )
            health_probe_id, ok = d.get_ok("health_probe_id")
            if ok:
                network_profile.health_probe = ApiEntityReference(id=health_probe_id)
            profile.network_profile = network_profile

        if d.has_change("boot_diagnostics"):
            update_instances = True
            profile.diagnostics_profile = expand_boot_diagnostics(d.get("boot_diagnostics"))

        if d.has_change("do_not_run_extensions_on_overprovisioned_machines"):
            update.do_not_run_extensions_on_overprovisioned_v_ms = d.get(
                "do_not_run_extensions_on_overprovisioned_machines"
            )

        if d.has_change("overprovision"):
            update.overprovision = d.get("overprovision")

        if d.has_change("scale_in_policy"):
            update.scale_in_policy = ScaleInPolicy(rules=[d.get("scale_in_policy")])

        if d.has_change("terminate_notification"):
            profile.scheduled_events_profile = expand_scheduled_events_profile(
                d.get("terminate_notification")
            )

        if d.has_change("encryption_at_host_enabled"):
            profile.security_profile = SecurityProfile(
                encryption_at_host=bool(d.get("encryption_at_host_enabled"))
            )

        if d.has_change("automatic_instance_repair"):
            update.automatic_repairs_policy = expand_automatic_repairs_policy(
                d.get("automatic_instance_repair")
            )

        if d.has_changes("sku", "instances"):
            # both are required, so start from the current values
            sku = copy.deepcopy(existing.sku) if existing.sku is not None else Sku()
            if d.has_change("sku"):
                update_instances = True
                sku.name = d.get("sku")
            if d.has_change("instances"):
                sku.capacity = d.get("instances")
            update.sku = sku

        if d.has_changes("extension", "extensions_time_budget"):
            update_instances = True
            extension_profile, _ = expand_extensions(d.get("extension"))
            extension_profile.extensions_time_budget = d.get("extensions_time_budget")
            profile.extension_profile = extension_profile

        self.customize_update(d, profile)

        if d.has_change("tags"):
            update.tags = tags.expand(d.get("tags"))

        logger.debug(f"[DEBUG] Updating {self.OS_TYPE} {id}..")
        try:
            poller = client.begin_update(id.resource_group, id.name, update)
        except HttpResponseError as e:
            raise wrap_azure_exception(e, f"updating {self.OS_TYPE}", str(id)) from e
        wait_for_completion(poller, d.timeouts.update, f"update of {self.OS_TYPE} {id}")
        logger.debug(f"[DEBUG] Updated {self.OS_TYPE} {id}.")

        if update_instances:
            self._upgrade_instances_if_required(d, context, id, existing)

        self.read(d, context)

    def _upgrade_instances_if_required(
        self,
        d: ResourceData,
        context: ProviderContext,
        id: VirtualMachineScaleSetId,
        existing: VirtualMachineScaleSet,
    ) -> None:
        """Bring Manual-mode instances up to the latest model, one at a time.

        Automatic and Rolling scale sets upgrade their instances themselves.
        """
        mode = ""
        if existing.upgrade_policy is not None:
            mode = enum_value(existing.upgrade_policy.mode) or ""
        if mode != UPGRADE_MODE_MANUAL:
            logger.debug(f"[DEBUG] {id} uses the {mode!r} upgrade mode - not rolling instances")
            return

        if not context.features.virtual_machine_scale_set.roll_instances_when_required:
            logger.debug(
                f"[DEBUG] Rolling the instances of {id} is disabled - instances keep the old model"
            )
            return

        compute_client = context.compute_client
        try:
            instances = list(
                compute_client.virtual_machine_scale_set_vms.list(id.resource_group, id.name)
            )
        except HttpResponseError as e:
            raise wrap_azure_exception(e, "listing instances", str(id)) from e

        for instance in instances:
            if instance.latest_model_applied:
                continue

            instance_id = instance.instance_id
            logger.debug(f"[DEBUG] Updating instance {instance_id!r} of {id} to the latest model..")
            try:
                poller = compute_client.virtual_machine_scale_sets.begin_update_instances(
                    id.resource_group,
                    id.name,
                    VirtualMachineScaleSetVMInstanceRequiredIDs(instance_ids=[instance_id]),
                )
            except HttpResponseError as e:
                raise wrap_azure_exception(
                    e, f"updating instance {instance_id!r}", str(id)
                ) from e
            wait_for_completion(
                poller, d.timeouts.update, f"update of instance {instance_id!r} of {id}"
            )
            logger.debug(f"[DEBUG] Updated instance {instance_id!r} of {id}.")

    def delete(self, d: ResourceData, context: ProviderContext) -> None:
        client = context.compute_client.virtual_machine_scale_sets
        id = VirtualMachineScaleSetId.parse(d.id)

        existing = get_or_none(
            f"retrieving {self.OS_TYPE}", str(id), client.get, id.resource_group, id.name
        )
        if existing is None:
            return

        logger.debug(f"[DEBUG] Deleting {self.OS_TYPE} {id}..")
        try:
            poller = client.begin_delete(id.resource_group, id.name)
        except HttpResponseError as e:
            if is_not_found(e):
                return
            raise wrap_azure_exception(e, f"deleting {self.OS_TYPE}", str(id)) from e
        wait_for_completion(poller, d.timeouts.delete, f"deletion of {self.OS_TYPE} {id}")
        logger.debug(f"[DEBUG] Deleted {self.OS_TYPE} {id}.")

    def matches_os(self, profile: Optional[VirtualMachineScaleSetOSProfile]) -> bool:
        if profile is None:
            return False
        if self.OS_TYPE == "Linux":
            return profile.linux_configuration is not None
        return profile.windows_configuration is not None

    def import_state(self, d: ResourceData, context: ProviderContext) -> None:
        """Reject scale sets running the other OS.

        The admin password can't be read back, so scale sets without SSH keys
        get a placeholder which is never diffed against the configuration.
        """
        client = context.compute_client.virtual_machine_scale_sets
        id = VirtualMachineScaleSetId.parse(d.id)

        resp = get_or_none(
            f"retrieving {self.OS_TYPE}", str(id), client.get, id.resource_group, id.name
        )
        if resp is None:
            return

        profile = resp.virtual_machine_profile
        if profile is None or profile.os_profile is None:
            raise AzureApiError(
                f"retrieving {id}: `properties.virtualMachineProfile.osProfile` was nil",
                resource_id=id.id(),
            )

        os_profile = profile.os_profile
        if not self.matches_os(os_profile):
            raise SchemaValidationError(
                f"The {self.type_name!r} resource only supports "
                f"{self.OS_TYPE} Virtual Machine Scale Sets"
            )

        has_ssh_keys = False
        linux = os_profile.linux_configuration
        if linux is not None and linux.ssh is not None:
            has_ssh_keys = bool(linux.ssh.public_keys)

        if not has_ssh_keys:
            d.set("admin_password", IMPORTED_ADMIN_PASSWORD)
