"""Resource ID parsing and formatting for Azure Resource Manager IDs.

Compute IDs follow the layout::

    /subscriptions/{subscriptionId}/resourceGroups/{resourceGroup}
        /providers/Microsoft.Compute/{type}/{name}[/{childType}/{childName}]

Each ID type is a frozen dataclass with an ``id()`` method producing the
canonical string and a ``parse()`` classmethod that accepts exactly that
layout. Parsing then formatting a well-formed ID returns the input unchanged;
anything else raises ResourceIdParseError.
"""

import logging
from dataclasses import dataclass, fields
from typing import ClassVar, List, Optional, Tuple, Type, TypeVar

from .exceptions import ResourceIdParseError

logger = logging.getLogger(__name__)

COMPUTE_PROVIDER = "Microsoft.Compute"

T = TypeVar("T", bound="ComputeResourceId")


@dataclass(frozen=True)
class ResourceId:
    """A generic ARM resource ID.

    Used for IDs owned by other providers (network interfaces, storage
    accounts, key vaults) where only the structure needs checking.
    """

    subscription_id: str
    resource_group: Optional[str]
    provider: Optional[str]
    path: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def parse(cls, input: str) -> "ResourceId":
        """Parse any ARM resource ID into its components.

        Args:
            input: The resource ID string

        Returns:
            ResourceId with the ordered (type, name) path after the provider

        Raises:
            ResourceIdParseError: If the ID is malformed
        """
        if not isinstance(input, str) or not input:
            raise ResourceIdParseError("ID was empty", resource_id=input)
        if not input.startswith("/"):
            raise ResourceIdParseError(
                "ID must start with a forward slash", resource_id=input
            )

        components = input[1:].split("/")
        if len(components) % 2 != 0:
            raise ResourceIdParseError(
                "ID must contain an even number of segments", resource_id=input
            )

        pairs: List[Tuple[str, str]] = []
        for i in range(0, len(components), 2):
            key, value = components[i], components[i + 1]
            if not key or not value:
                raise ResourceIdParseError(
                    "ID contains an empty segment", resource_id=input
                )
            pairs.append((key, value))

        if pairs[0][0] != "subscriptions":
            raise ResourceIdParseError(
                "ID was missing the 'subscriptions' element", resource_id=input
            )
        subscription_id = pairs[0][1]
        remaining = pairs[1:]

        resource_group = None
        if remaining and remaining[0][0] == "resourceGroups":
            resource_group = remaining[0][1]
            remaining = remaining[1:]

        provider = None
        if remaining:
            if remaining[0][0] != "providers":
                raise ResourceIdParseError(
                    f"ID contained an unexpected segment {remaining[0][0]!r}",
                    resource_id=input,
                )
            provider = remaining[0][1]
            remaining = remaining[1:]
            if not remaining:
                raise ResourceIdParseError(
                    "ID names a provider but no resource type", resource_id=input
                )

        return cls(
            subscription_id=subscription_id,
            resource_group=resource_group,
            provider=provider,
            path=tuple(remaining),
        )

    def id(self) -> str:
        parts = [f"/subscriptions/{self.subscription_id}"]
        if self.resource_group is not None:
            parts.append(f"/resourceGroups/{self.resource_group}")
        if self.provider is not None:
            parts.append(f"/providers/{self.provider}")
        for key, value in self.path:
            parts.append(f"/{key}/{value}")
        return "".join(parts)

    @property
    def name(self) -> str:
        """The final name segment of the ID."""
        if self.path:
            return self.path[-1][1]
        return self.resource_group or self.subscription_id


@dataclass(frozen=True)
class ComputeResourceId:
    """Base for the typed Microsoft.Compute resource IDs.

    Subclasses declare ``SEGMENTS``: the (key, field) pairs that follow the
    provider, in order. The dataclass fields after ``resource_group`` must be
    named after those fields.
    """

    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = ()
    DESCRIPTION: ClassVar[str] = "Compute Resource"

    subscription_id: str
    resource_group: str

    @classmethod
    def parse(cls: Type[T], input: str) -> T:
        """Parse the typed ID, rejecting any other layout."""
        generic = ResourceId.parse(input)
        if generic.resource_group is None:
            raise ResourceIdParseError(
                "ID was missing the 'resourceGroups' element",
                resource_id=input,
                id_type=cls.__name__,
            )
        if generic.provider != COMPUTE_PROVIDER:
            raise ResourceIdParseError(
                f"ID was not a {COMPUTE_PROVIDER} ID",
                resource_id=input,
                id_type=cls.__name__,
            )
        if len(generic.path) != len(cls.SEGMENTS):
            raise ResourceIdParseError(
                f"expected {len(cls.SEGMENTS)} segment(s) after the provider, "
                f"got {len(generic.path)}",
                resource_id=input,
                id_type=cls.__name__,
            )

        values = {}
        for (expected_key, field_name), (key, value) in zip(cls.SEGMENTS, generic.path):
            if key != expected_key:
                raise ResourceIdParseError(
                    f"ID was missing the '{expected_key}' element",
                    resource_id=input,
                    id_type=cls.__name__,
                )
            values[field_name] = value

        return cls(
            subscription_id=generic.subscription_id,
            resource_group=generic.resource_group,
            **values,
        )

    @classmethod
    def is_valid(cls, input: str) -> bool:
        try:
            cls.parse(input)
        except ResourceIdParseError:
            return False
        return True

    def id(self) -> str:
        segments = "".join(
            f"/{key}/{getattr(self, field_name)}" for key, field_name in self.SEGMENTS
        )
        return (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/{COMPUTE_PROVIDER}{segments}"
        )

    def __str__(self) -> str:
        names = [
            f'{f.name.replace("_", " ").title()} "{getattr(self, f.name)}"'
            for f in fields(self)
            if f.name not in ("subscription_id", "resource_group")
        ]
        names.append(f'Resource Group "{self.resource_group}"')
        return f"{self.DESCRIPTION} ({' / '.join(names)})"


@dataclass(frozen=True)
class AvailabilitySetId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (("availabilitySets", "name"),)
    DESCRIPTION: ClassVar[str] = "Availability Set"

    name: str


@dataclass(frozen=True)
class ManagedDiskId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (("disks", "disk_name"),)
    DESCRIPTION: ClassVar[str] = "Managed Disk"

    disk_name: str


@dataclass(frozen=True)
class ImageId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (("images", "name"),)
    DESCRIPTION: ClassVar[str] = "Image"

    name: str


@dataclass(frozen=True)
class VirtualMachineId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (("virtualMachines", "name"),)
    DESCRIPTION: ClassVar[str] = "Virtual Machine"

    name: str


@dataclass(frozen=True)
class VirtualMachineExtensionId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("virtualMachines", "virtual_machine_name"),
        ("extensions", "extension_name"),
    )
    DESCRIPTION: ClassVar[str] = "Virtual Machine Extension"

    virtual_machine_name: str
    extension_name: str

    @property
    def virtual_machine_id(self) -> VirtualMachineId:
        return VirtualMachineId(
            self.subscription_id, self.resource_group, self.virtual_machine_name
        )


@dataclass(frozen=True)
class VirtualMachineScaleSetId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("virtualMachineScaleSets", "name"),
    )
    DESCRIPTION: ClassVar[str] = "Virtual Machine Scale Set"

    name: str


@dataclass(frozen=True)
class VirtualMachineScaleSetExtensionId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("virtualMachineScaleSets", "virtual_machine_scale_set_name"),
        ("extensions", "extension_name"),
    )
    DESCRIPTION: ClassVar[str] = "Virtual Machine Scale Set Extension"

    virtual_machine_scale_set_name: str
    extension_name: str

    @property
    def virtual_machine_scale_set_id(self) -> VirtualMachineScaleSetId:
        return VirtualMachineScaleSetId(
            self.subscription_id, self.resource_group, self.virtual_machine_scale_set_name
        )


@dataclass(frozen=True)
class DataDiskId(ComputeResourceId):
    SEGMENTS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("virtualMachines", "virtual_machine_name"),
        ("dataDisks", "name"),
    )
    DESCRIPTION: ClassVar[str] = "Data Disk Attachment"

    virtual_machine_name: str
    name: str

    @property
    def virtual_machine_id(self) -> VirtualMachineId:
        return VirtualMachineId(
            self.subscription_id, self.resource_group, self.virtual_machine_name
        )


def validate_id(id_class: Type[ComputeResourceId]):
    """Build a schema validator that checks a value parses as ``id_class``."""

    def validator(value, key: str) -> List[str]:
        if not isinstance(value, str):
            return [f"expected {key} to be a string"]
        try:
            id_class.parse(value)
        except ResourceIdParseError as e:
            return [f"parsing {key} {value!r}: {e.message}"]
        return []

    return validator


def validate_resource_id(value, key: str) -> List[str]:
    """Schema validator for any well-formed ARM resource ID."""
    if not isinstance(value, str):
        return [f"expected {key} to be a string"]
    try:
        ResourceId.parse(value)
    except ResourceIdParseError as e:
        return [f"parsing {key} {value!r}: {e.message}"]
    return []


def validate_resource_id_or_empty(value, key: str) -> List[str]:
    if value == "":
        return []
    return validate_resource_id(value, key)
