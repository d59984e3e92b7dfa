"""Blocks shared by the Virtual Machine and Virtual Machine Scale Set resources.

Schema builders plus expand (configuration to SDK model) and flatten (SDK
model to state) functions for source images, SSH keys and boot diagnostics,
and the lookup of IP addresses from a machine's network interfaces.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from azure.mgmt.compute.models import (
    BootDiagnostics,
    DiagnosticsProfile,
    ImageReference,
    SshConfiguration,
    SshPublicKey,
)

from ...exceptions import AzureApiError, SchemaValidationError
from ...resource_ids import validate_resource_id
from ...schema import TYPE_SET, TYPE_STRING, Attribute, block
from ...utils.azure import get_or_none
from ...validate import is_url_with_http_or_https, ssh_public_key, string_is_not_empty

logger = logging.getLogger(__name__)

CACHING_TYPES = ["None", "ReadOnly", "ReadWrite"]
STORAGE_ACCOUNT_TYPES = ["Premium_LRS", "Standard_LRS"]

# API version used for generic lookups of Microsoft.Network objects
NETWORK_API_VERSION = "2018-11-01"

SSH_KEY_PATH_PATTERN = re.compile(r"^/home/(.+)/\.ssh/authorized_keys$")


def source_image_reference_schema(force_new: bool) -> Attribute:
    return block(
        {
            "publisher": Attribute(
                TYPE_STRING, required=True, force_new=force_new, validate=string_is_not_empty
            ),
            "offer": Attribute(
                TYPE_STRING, required=True, force_new=force_new, validate=string_is_not_empty
            ),
            "sku": Attribute(
                TYPE_STRING, required=True, force_new=force_new, validate=string_is_not_empty
            ),
            "version": Attribute(
                TYPE_STRING, required=True, force_new=force_new, validate=string_is_not_empty
            ),
        },
        optional=True,
        max_items=1,
        force_new=force_new,
        exactly_one_of=("source_image_id", "source_image_reference"),
    )


def source_image_id_schema(force_new: bool) -> Attribute:
    return Attribute(
        TYPE_STRING,
        optional=True,
        force_new=force_new,
        validate=validate_resource_id,
        exactly_one_of=("source_image_id", "source_image_reference"),
    )


def expand_source_image_reference(
    references: List[Dict[str, Any]], image_id: str
) -> ImageReference:
    if image_id:
        return ImageReference(id=image_id)

    if not references:
        raise SchemaValidationError(
            "either a `source_image_id` or a `source_image_reference` block must be specified"
        )

    raw = references[0]
    return ImageReference(
        publisher=raw["publisher"],
        offer=raw["offer"],
        sku=raw["sku"],
        version=raw["version"],
    )


def flatten_source_image_reference(reference: Optional[ImageReference]) -> List[Dict[str, Any]]:
    # a Platform Image is a reference; an image ID is flattened into `source_image_id`
    if reference is None or reference.id:
        return []

    return [
        {
            "publisher": reference.publisher or "",
            "offer": reference.offer or "",
            "sku": reference.sku or "",
            "version": reference.version or "",
        }
    ]


def flatten_source_image_id(reference: Optional[ImageReference]) -> str:
    if reference is None:
        return ""
    return reference.id or ""


def ssh_keys_schema(force_new: bool) -> Attribute:
    return block(
        {
            "public_key": Attribute(
                TYPE_STRING, required=True, force_new=force_new, validate=ssh_public_key
            ),
            "username": Attribute(
                TYPE_STRING, required=True, force_new=force_new, validate=string_is_not_empty
            ),
        },
        type=TYPE_SET,
        optional=True,
        force_new=force_new,
    )


def expand_ssh_keys(keys: List[Dict[str, Any]]) -> List[SshPublicKey]:
    output = []
    for raw in keys:
        username = raw["username"]
        output.append(
            SshPublicKey(
                key_data=raw["public_key"],
                path=f"/home/{username}/.ssh/authorized_keys",
            )
        )
    return output


def flatten_ssh_keys(ssh: Optional[SshConfiguration]) -> List[Dict[str, Any]]:
    if ssh is None:
        return []

    output = []
    for key in ssh.public_keys or []:
        if not key.path:
            continue

        # Azure only supports keys in the user's authorized_keys file
        match = SSH_KEY_PATH_PATTERN.match(key.path)
        if match is None:
            raise AzureApiError(f"parsing username from {key.path!r}")

        output.append(
            {
                "public_key": key.key_data or "",
                "username": match.group(1),
            }
        )
    return output


def boot_diagnostics_schema() -> Attribute:
    return block(
        {
            "storage_account_uri": Attribute(
                TYPE_STRING, required=True, validate=is_url_with_http_or_https
            ),
        },
        optional=True,
        max_items=1,
    )


def expand_boot_diagnostics(config: List[Dict[str, Any]]) -> DiagnosticsProfile:
    if not config:
        return DiagnosticsProfile(boot_diagnostics=BootDiagnostics(enabled=False))

    return DiagnosticsProfile(
        boot_diagnostics=BootDiagnostics(
            enabled=True,
            storage_uri=config[0]["storage_account_uri"],
        )
    )


def flatten_boot_diagnostics(profile: Optional[DiagnosticsProfile]) -> List[Dict[str, Any]]:
    if profile is None or profile.boot_diagnostics is None:
        return []

    diagnostics = profile.boot_diagnostics
    if not diagnostics.enabled:
        return []

    return [{"storage_account_uri": diagnostics.storage_uri or ""}]


def admin_ssh_key_required(
    disable_password_authentication: bool, admin_password: str, ssh_keys: List[Any]
) -> Optional[str]:
    """Linux machines need either password authentication or an SSH key."""
    if disable_password_authentication and not admin_password and not ssh_keys:
        return (
            "at least one SSH key must be specified if "
            "`disable_password_authentication` is enabled"
        )
    if not disable_password_authentication and not admin_password:
        return (
            "an `admin_password` must be specified if "
            "`disable_password_authentication` is set to `false`"
        )
    return None


@dataclass
class ConnectionInformation:
    """IP addresses of a machine, primary network interface first."""

    private_ip_addresses: List[str] = field(default_factory=list)
    public_ip_addresses: List[str] = field(default_factory=list)

    @property
    def private_ip_address(self) -> str:
        return self.private_ip_addresses[0] if self.private_ip_addresses else ""

    @property
    def public_ip_address(self) -> str:
        return self.public_ip_addresses[0] if self.public_ip_addresses else ""


def _properties(resource: Any) -> Dict[str, Any]:
    properties = getattr(resource, "properties", None)
    return properties if isinstance(properties, dict) else {}


def retrieve_connection_information(
    resource_client: Any, network_interface_ids: List[str]
) -> ConnectionInformation:
    """Look up the private and public IP addresses behind the network interfaces.

    Network interfaces and public IPs live in Microsoft.Network, so they are
    read through the generic Resource Manager client. Interfaces which no
    longer exist are skipped.

    Args:
        resource_client: ResourceManagementClient
        network_interface_ids: Network interface IDs in the machine's order

    Returns:
        ConnectionInformation
    """
    info = ConnectionInformation()

    for nic_id in network_interface_ids:
        nic = get_or_none(
            "retrieving Network Interface",
            nic_id,
            resource_client.resources.get_by_id,
            nic_id,
            NETWORK_API_VERSION,
        )
        if nic is None:
            logger.debug(f"[DEBUG] Network Interface {nic_id!r} was not found - skipping")
            continue

        for ip_configuration in _properties(nic).get("ipConfigurations") or []:
            props = ip_configuration.get("properties") or {}

            private_ip = props.get("privateIPAddress")
            if private_ip:
                info.private_ip_addresses.append(private_ip)

            public_ip_id = (props.get("publicIPAddress") or {}).get("id")
            if not public_ip_id:
                continue

            public_ip = get_or_none(
                "retrieving Public IP",
                public_ip_id,
                resource_client.resources.get_by_id,
                public_ip_id,
                NETWORK_API_VERSION,
            )
            if public_ip is None:
                continue
            address = _properties(public_ip).get("ipAddress")
            if address:
                info.public_ip_addresses.append(address)

    return info
