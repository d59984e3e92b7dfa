"""Schema blocks for the Linux and Windows Virtual Machine Scale Set resources.

Each block has a schema builder, an expand function producing the SDK model
sent on create (and, where the API uses a different model, on update) and a
flatten function turning the API model back into state. Flatten functions
fall back to zero values so that a partially populated response never
leaves stale values in state.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from azure.mgmt.compute.models import (
    ApiEntityReference,
    AutomaticOSUpgradePolicy,
    AutomaticRepairsPolicy,
    RollingUpgradePolicy,
    ScheduledEventsProfile,
    SubResource,
    TerminateNotificationProfile,
    VirtualMachineScaleSetDataDisk,
    VirtualMachineScaleSetExtension,
    VirtualMachineScaleSetExtensionProfile,
    VirtualMachineScaleSetIPConfiguration,
    VirtualMachineScaleSetManagedDiskParameters,
    VirtualMachineScaleSetNetworkConfiguration,
    VirtualMachineScaleSetNetworkConfigurationDnsSettings,
    VirtualMachineScaleSetOSDisk,
    VirtualMachineScaleSetUpdateIPConfiguration,
    VirtualMachineScaleSetUpdateNetworkConfiguration,
    VirtualMachineScaleSetUpdateOSDisk,
)

from ...resource_ids import validate_resource_id
from ...schema import (
    TYPE_BOOL,
    TYPE_INT,
    TYPE_SET,
    TYPE_STRING,
    Attribute,
    block,
    string_list,
    string_set,
)
from ...utils import settings
from ...utils.azure import (
    enum_value,
    expand_ids_to_sub_resources,
    flatten_sub_resources_to_ids,
)
from ...utils.diff_suppress import json_equivalent
from ...validate import (
    int_between,
    iso8601_duration,
    string_in_slice,
    string_is_json,
    string_is_not_empty,
)
from .virtual_machine_shared import CACHING_TYPES, STORAGE_ACCOUNT_TYPES

logger = logging.getLogger(__name__)

HEALTH_EXTENSION_TYPES = ("ApplicationHealthLinux", "ApplicationHealthWindows")

DEFAULT_EXTENSIONS_TIME_BUDGET = "PT1H30M"
DEFAULT_TERMINATE_NOTIFICATION_TIMEOUT = "PT5M"
DEFAULT_REPAIR_GRACE_PERIOD = "PT30M"


# network_interface


def network_interface_schema() -> Attribute:
    ip_configuration = block(
        {
            "name": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "load_balancer_backend_address_pool_ids": string_set(optional=True),
            "load_balancer_inbound_nat_rules_ids": string_set(optional=True),
            "primary": Attribute(TYPE_BOOL, optional=True, default=False),
            "subnet_id": Attribute(
                TYPE_STRING, optional=True, validate=validate_resource_id
            ),
            "version": Attribute(
                TYPE_STRING,
                optional=True,
                default="IPv4",
                validate=string_in_slice(["IPv4", "IPv6"]),
            ),
        },
        required=True,
        min_items=1,
    )

    return block(
        {
            "name": Attribute(
                TYPE_STRING, required=True, force_new=True, validate=string_is_not_empty
            ),
            "ip_configuration": ip_configuration,
            "dns_servers": string_list(optional=True),
            "enable_ip_forwarding": Attribute(TYPE_BOOL, optional=True, default=False),
            "network_security_group_id": Attribute(
                TYPE_STRING, optional=True, validate=validate_resource_id
            ),
            "primary": Attribute(TYPE_BOOL, optional=True, default=False),
        },
        required=True,
        min_items=1,
    )


def _expand_ip_configuration(raw: Dict[str, Any]) -> VirtualMachineScaleSetIPConfiguration:
    ip_configuration = VirtualMachineScaleSetIPConfiguration(
        name=raw["name"],
        primary=raw.get("primary", False),
        private_ip_address_version=raw.get("version") or "IPv4",
        load_balancer_backend_address_pools=expand_ids_to_sub_resources(
            raw.get("load_balancer_backend_address_pool_ids")
        ),
        load_balancer_inbound_nat_pools=expand_ids_to_sub_resources(
            raw.get("load_balancer_inbound_nat_rules_ids")
        ),
    )
    if raw.get("subnet_id"):
        ip_configuration.subnet = ApiEntityReference(id=raw["subnet_id"])
    return ip_configuration


def _expand_ip_configuration_update(
    raw: Dict[str, Any],
) -> VirtualMachineScaleSetUpdateIPConfiguration:
    ip_configuration = VirtualMachineScaleSetUpdateIPConfiguration(
        name=raw["name"],
        primary=raw.get("primary", False),
        private_ip_address_version=raw.get("version") or "IPv4",
    )
    if raw.get("subnet_id"):
        ip_configuration.subnet = ApiEntityReference(id=raw["subnet_id"])
    return ip_configuration


def expand_network_interfaces(
    config: List[Dict[str, Any]],
) -> List[VirtualMachineScaleSetNetworkConfiguration]:
    output = []
    for raw in config:
        network_interface = VirtualMachineScaleSetNetworkConfiguration(
            name=raw["name"],
            primary=raw.get("primary", False),
            enable_ip_forwarding=raw.get("enable_ip_forwarding", False),
            dns_settings=VirtualMachineScaleSetNetworkConfigurationDnsSettings(
                dns_servers=raw.get("dns_servers") or []
            ),
            ip_configurations=[
                _expand_ip_configuration(ip) for ip in raw.get("ip_configuration") or []
            ],
        )
        if raw.get("network_security_group_id"):
            network_interface.network_security_group = SubResource(
                id=raw["network_security_group_id"]
            )
        output.append(network_interface)
    return output


def expand_network_interfaces_update(
    config: List[Dict[str, Any]],
) -> List[VirtualMachineScaleSetUpdateNetworkConfiguration]:
    output = []
    for raw in config:
        network_interface = VirtualMachineScaleSetUpdateNetworkConfiguration(
            name=raw["name"],
            primary=raw.get("primary", False),
            enable_ip_forwarding=raw.get("enable_ip_forwarding", False),
            dns_settings=VirtualMachineScaleSetNetworkConfigurationDnsSettings(
                dns_servers=raw.get("dns_servers") or []
            ),
            ip_configurations=[
                _expand_ip_configuration_update(ip)
                for ip in raw.get("ip_configuration") or []
            ],
        )
        if raw.get("network_security_group_id"):
            network_interface.network_security_group = SubResource(
                id=raw["network_security_group_id"]
            )
        output.append(network_interface)
    return output


def flatten_network_interfaces(
    network_interfaces: Optional[List[VirtualMachineScaleSetNetworkConfiguration]],
) -> List[Dict[str, Any]]:
    results = []
    for nic in network_interfaces or []:
        dns_servers: List[str] = []
        if nic.dns_settings is not None:
            dns_servers = list(nic.dns_settings.dns_servers or [])

        ip_configurations = []
        for ip in nic.ip_configurations or []:
            ip_configurations.append(
                {
                    "name": ip.name or "",
                    "primary": bool(ip.primary),
                    "subnet_id": ip.subnet.id if ip.subnet is not None and ip.subnet.id else "",
                    "version": enum_value(ip.private_ip_address_version) or "",
                    "load_balancer_backend_address_pool_ids": flatten_sub_resources_to_ids(
                        ip.load_balancer_backend_address_pools
                    ),
                    "load_balancer_inbound_nat_rules_ids": flatten_sub_resources_to_ids(
                        ip.load_balancer_inbound_nat_pools
                    ),
                }
            )

        network_security_group_id = ""
        if nic.network_security_group is not None and nic.network_security_group.id:
            network_security_group_id = nic.network_security_group.id

        results.append(
            {
                "name": nic.name or "",
                "dns_servers": dns_servers,
                "enable_ip_forwarding": bool(nic.enable_ip_forwarding),
                "ip_configuration": ip_configurations,
                "network_security_group_id": network_security_group_id,
                "primary": bool(nic.primary),
            }
        )
    return results


# data_disk


def data_disk_schema() -> Attribute:
    return block(
        {
            "caching": Attribute(
                TYPE_STRING, required=True, validate=string_in_slice(CACHING_TYPES)
            ),
            "create_option": Attribute(
                TYPE_STRING,
                optional=True,
                default="Empty",
                validate=string_in_slice(["Empty", "FromImage"]),
            ),
            "disk_size_gb": Attribute(
                TYPE_INT, required=True, validate=int_between(1, 32767)
            ),
            "lun": Attribute(TYPE_INT, required=True, validate=int_between(0, 2000)),
            "storage_account_type": Attribute(
                TYPE_STRING, required=True, validate=string_in_slice(STORAGE_ACCOUNT_TYPES)
            ),
            "write_accelerator_enabled": Attribute(TYPE_BOOL, optional=True, default=False),
        },
        optional=True,
    )


def expand_data_disks(config: List[Dict[str, Any]]) -> List[VirtualMachineScaleSetDataDisk]:
    return [
        VirtualMachineScaleSetDataDisk(
            caching=raw["caching"],
            create_option=raw.get("create_option") or "Empty",
            disk_size_gb=raw["disk_size_gb"],
            lun=raw["lun"],
            managed_disk=VirtualMachineScaleSetManagedDiskParameters(
                storage_account_type=raw["storage_account_type"]
            ),
            write_accelerator_enabled=raw.get("write_accelerator_enabled", False),
        )
        for raw in config
    ]


def flatten_data_disks(
    data_disks: Optional[List[VirtualMachineScaleSetDataDisk]],
) -> List[Dict[str, Any]]:
    output = []
    for disk in data_disks or []:
        storage_account_type = ""
        if disk.managed_disk is not None:
            storage_account_type = enum_value(disk.managed_disk.storage_account_type) or ""

        output.append(
            {
                "caching": enum_value(disk.caching) or "",
                "create_option": enum_value(disk.create_option) or "",
                "disk_size_gb": disk.disk_size_gb or 0,
                "lun": disk.lun or 0,
                "storage_account_type": storage_account_type,
                "write_accelerator_enabled": bool(disk.write_accelerator_enabled),
            }
        )
    return output


# os_disk


def os_disk_schema() -> Attribute:
    return block(
        {
            "caching": Attribute(
                TYPE_STRING, required=True, validate=string_in_slice(CACHING_TYPES)
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
        min_items=1,
        max_items=1,
    )


def expand_os_disk(config: List[Dict[str, Any]], os_type: str) -> VirtualMachineScaleSetOSDisk:
    raw = config[0]
    os_disk = VirtualMachineScaleSetOSDisk(
        caching=raw["caching"],
        managed_disk=VirtualMachineScaleSetManagedDiskParameters(
            storage_account_type=raw["storage_account_type"]
        ),
        write_accelerator_enabled=raw.get("write_accelerator_enabled", False),
        # these have to be hard-coded so there's no point exposing them
        create_option="FromImage",
        os_type=os_type,
    )
    if raw.get("disk_size_gb"):
        os_disk.disk_size_gb = raw["disk_size_gb"]
    return os_disk


def expand_os_disk_update(config: List[Dict[str, Any]]) -> VirtualMachineScaleSetUpdateOSDisk:
    raw = config[0]
    os_disk = VirtualMachineScaleSetUpdateOSDisk(
        caching=raw["caching"],
        managed_disk=VirtualMachineScaleSetManagedDiskParameters(
            storage_account_type=raw["storage_account_type"]
        ),
        write_accelerator_enabled=raw.get("write_accelerator_enabled", False),
    )
    if raw.get("disk_size_gb"):
        os_disk.disk_size_gb = raw["disk_size_gb"]
    return os_disk


def flatten_os_disk(os_disk: Optional[VirtualMachineScaleSetOSDisk]) -> List[Dict[str, Any]]:
    if os_disk is None:
        return []

    storage_account_type = ""
    if os_disk.managed_disk is not None:
        storage_account_type = enum_value(os_disk.managed_disk.storage_account_type) or ""

    return [
        {
            "caching": enum_value(os_disk.caching) or "",
            "disk_size_gb": os_disk.disk_size_gb or 0,
            "storage_account_type": storage_account_type,
            "write_accelerator_enabled": bool(os_disk.write_accelerator_enabled),
        }
    ]


# upgrade policies


def automatic_os_upgrade_policy_schema() -> Attribute:
    return block(
        {
            "disable_automatic_rollback": Attribute(TYPE_BOOL, required=True),
            "enable_automatic_os_upgrade": Attribute(TYPE_BOOL, required=True),
        },
        optional=True,
        max_items=1,
    )


def expand_automatic_os_upgrade_policy(
    config: List[Dict[str, Any]],
) -> Optional[AutomaticOSUpgradePolicy]:
    if not config:
        return None
    raw = config[0]
    return AutomaticOSUpgradePolicy(
        disable_automatic_rollback=raw["disable_automatic_rollback"],
        enable_automatic_os_upgrade=raw["enable_automatic_os_upgrade"],
    )


def flatten_automatic_os_upgrade_policy(
    policy: Optional[AutomaticOSUpgradePolicy],
) -> List[Dict[str, Any]]:
    if policy is None:
        return []
    return [
        {
            "disable_automatic_rollback": bool(policy.disable_automatic_rollback),
            "enable_automatic_os_upgrade": bool(policy.enable_automatic_os_upgrade),
        }
    ]


def rolling_upgrade_policy_schema() -> Attribute:
    return block(
        {
            "max_batch_instance_percent": Attribute(
                TYPE_INT, required=True, validate=int_between(5, 100)
            ),
            "max_unhealthy_instance_percent": Attribute(
                TYPE_INT, required=True, validate=int_between(5, 100)
            ),
            "max_unhealthy_upgraded_instance_percent": Attribute(
                TYPE_INT, required=True, validate=int_between(0, 100)
            ),
            "pause_time_between_batches": Attribute(
                TYPE_STRING, required=True, validate=iso8601_duration
            ),
        },
        optional=True,
        max_items=1,
    )


def expand_rolling_upgrade_policy(
    config: List[Dict[str, Any]],
) -> Optional[RollingUpgradePolicy]:
    if not config:
        return None
    raw = config[0]
    return RollingUpgradePolicy(
        max_batch_instance_percent=raw["max_batch_instance_percent"],
        max_unhealthy_instance_percent=raw["max_unhealthy_instance_percent"],
        max_unhealthy_upgraded_instance_percent=raw["max_unhealthy_upgraded_instance_percent"],
        pause_time_between_batches=raw["pause_time_between_batches"],
    )


def flatten_rolling_upgrade_policy(
    policy: Optional[RollingUpgradePolicy],
) -> List[Dict[str, Any]]:
    if policy is None:
        return []
    return [
        {
            "max_batch_instance_percent": policy.max_batch_instance_percent or 0,
            "max_unhealthy_instance_percent": policy.max_unhealthy_instance_percent or 0,
            "max_unhealthy_upgraded_instance_percent": (
                policy.max_unhealthy_upgraded_instance_percent or 0
            ),
            "pause_time_between_batches": policy.pause_time_between_batches or "",
        }
    ]


# terminate_notification and automatic_instance_repair


def terminate_notification_schema() -> Attribute:
    return block(
        {
            "enabled": Attribute(TYPE_BOOL, required=True),
            "timeout": Attribute(
                TYPE_STRING,
                optional=True,
                default=DEFAULT_TERMINATE_NOTIFICATION_TIMEOUT,
                validate=iso8601_duration,
            ),
        },
        optional=True,
        computed=True,
        max_items=1,
    )


def expand_scheduled_events_profile(
    config: List[Dict[str, Any]],
) -> Optional[ScheduledEventsProfile]:
    if not config:
        return None
    raw = config[0]
    return ScheduledEventsProfile(
        terminate_notification_profile=TerminateNotificationProfile(
            enable=raw["enabled"],
            not_before_timeout=raw.get("timeout") or DEFAULT_TERMINATE_NOTIFICATION_TIMEOUT,
        )
    )


def flatten_scheduled_events_profile(
    profile: Optional[ScheduledEventsProfile],
) -> List[Dict[str, Any]]:
    # a disabled notification isn't returned at all, so a default block is
    # flattened to keep an explicit `enabled = false` from showing a diff
    notification = profile.terminate_notification_profile if profile is not None else None
    enabled = False
    timeout = DEFAULT_TERMINATE_NOTIFICATION_TIMEOUT
    if notification is not None:
        if notification.enable is not None:
            enabled = notification.enable
        if notification.not_before_timeout:
            timeout = notification.not_before_timeout
    return [{"enabled": enabled, "timeout": timeout}]


def automatic_instance_repair_schema() -> Attribute:
    return block(
        {
            "enabled": Attribute(TYPE_BOOL, required=True),
            "grace_period": Attribute(
                TYPE_STRING,
                optional=True,
                default=DEFAULT_REPAIR_GRACE_PERIOD,
                validate=iso8601_duration,
            ),
        },
        optional=True,
        computed=True,
        max_items=1,
    )


def expand_automatic_repairs_policy(
    config: List[Dict[str, Any]],
) -> Optional[AutomaticRepairsPolicy]:
    if not config:
        return None
    raw = config[0]
    return AutomaticRepairsPolicy(
        enabled=raw["enabled"],
        grace_period=raw.get("grace_period") or DEFAULT_REPAIR_GRACE_PERIOD,
    )


def flatten_automatic_repairs_policy(
    policy: Optional[AutomaticRepairsPolicy],
) -> List[Dict[str, Any]]:
    # same as terminate_notification: a disabled policy isn't returned
    enabled = False
    grace_period = DEFAULT_REPAIR_GRACE_PERIOD
    if policy is not None:
        if policy.enabled is not None:
            enabled = policy.enabled
        if policy.grace_period:
            grace_period = policy.grace_period
    return [{"enabled": enabled, "grace_period": grace_period}]


# extension


def extensions_schema() -> Attribute:
    return block(
        {
            "name": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "publisher": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "type": Attribute(TYPE_STRING, required=True, validate=string_is_not_empty),
            "type_handler_version": Attribute(
                TYPE_STRING, required=True, validate=string_is_not_empty
            ),
            "auto_upgrade_minor_version": Attribute(TYPE_BOOL, optional=True, default=True),
            "automatic_upgrade_enabled": Attribute(TYPE_BOOL, optional=True),
            "force_update_tag": Attribute(TYPE_STRING, optional=True),
            "protected_settings": Attribute(
                TYPE_STRING, optional=True, sensitive=True, validate=string_is_json
            ),
            "provision_after_extensions": string_list(optional=True),
            "settings": Attribute(
                TYPE_STRING,
                optional=True,
                validate=string_is_json,
                diff_suppress=json_equivalent,
            ),
        },
        type=TYPE_SET,
        optional=True,
        computed=True,
    )


def expand_extensions(
    config: List[Dict[str, Any]],
) -> Tuple[VirtualMachineScaleSetExtensionProfile, bool]:
    """Build the extension profile.

    Returns:
        The profile and whether one of the extensions is an application
        health extension (which satisfies the health check of Rolling upgrades)
    """
    profile = VirtualMachineScaleSetExtensionProfile()
    if not config:
        return profile, False

    has_health_extension = False
    extensions = []
    for raw in config:
        extension_type = raw["type"]
        if extension_type in HEALTH_EXTENSION_TYPES:
            has_health_extension = True

        extension = VirtualMachineScaleSetExtension(
            name=raw["name"],
            publisher=raw["publisher"],
            type_properties_type=extension_type,
            type_handler_version=raw["type_handler_version"],
            auto_upgrade_minor_version=raw.get("auto_upgrade_minor_version", True),
            enable_automatic_upgrade=bool(raw.get("automatic_upgrade_enabled")),
            provision_after_extensions=raw.get("provision_after_extensions") or [],
        )
        if raw.get("force_update_tag"):
            extension.force_update_tag = raw["force_update_tag"]
        if raw.get("settings"):
            extension.settings = settings.expand(raw["settings"], "settings")
        if raw.get("protected_settings"):
            extension.protected_settings = settings.expand(
                raw["protected_settings"], "protected_settings"
            )
        extensions.append(extension)

    profile.extensions = extensions
    return profile, has_health_extension


def flatten_extensions(
    profile: Optional[VirtualMachineScaleSetExtensionProfile],
    from_state: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """Flatten the extension profile.

    ``protected_settings`` is never returned by the API, so it is carried
    over by name from the prior value of the block.
    """
    if profile is None or profile.extensions is None:
        return []

    protected_by_name = {}
    for ext in from_state or []:
        if not isinstance(ext, dict) or not ext.get("name"):
            continue
        protected = ext.get("protected_settings") or ""
        if protected not in ("", "{}"):
            protected_by_name[ext["name"]] = protected

    result = []
    for extension in profile.extensions:
        name = extension.name or ""
        result.append(
            {
                "name": name,
                "auto_upgrade_minor_version": bool(extension.auto_upgrade_minor_version),
                "automatic_upgrade_enabled": bool(extension.enable_automatic_upgrade),
                "force_update_tag": extension.force_update_tag or "",
                "provision_after_extensions": list(extension.provision_after_extensions or []),
                "protected_settings": protected_by_name.get(name, ""),
                "publisher": extension.publisher or "",
                "settings": settings.flatten(extension.settings or None),
                "type": extension.type_properties_type or "",
                "type_handler_version": extension.type_handler_version or "",
            }
        )
    return result
