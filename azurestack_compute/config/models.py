"""
Configuration document models.

A configuration document is the Terraform JSON layout: a ``provider`` block
keyed by provider name, and ``resource`` / ``data`` blocks keyed by type and
then by local name. Pydantic validates the outer shape; the attributes inside
each block are validated by the resource schemas.
"""

import re
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROVIDER_NAME = "azurestack"
LOCAL_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")


class VirtualMachineFeatures(BaseModel):
    """Behaviour toggles for the virtual machine resources."""

    delete_os_disk_on_deletion: bool = Field(
        default=True,
        description="Delete the managed OS disk when the virtual machine is destroyed",
    )
    graceful_shutdown: bool = Field(
        default=False,
        description="Shut the guest OS down before powering off on destroy",
    )

    model_config = ConfigDict(extra="forbid")


class VirtualMachineScaleSetFeatures(BaseModel):
    """Behaviour toggles for the scale set resources."""

    roll_instances_when_required: bool = Field(
        default=True,
        description="Upgrade Manual-mode instances to the latest model after changes",
    )

    model_config = ConfigDict(extra="forbid")


class Features(BaseModel):
    """The provider ``features`` block."""

    virtual_machine: VirtualMachineFeatures = Field(
        default_factory=VirtualMachineFeatures
    )
    virtual_machine_scale_set: VirtualMachineScaleSetFeatures = Field(
        default_factory=VirtualMachineScaleSetFeatures
    )

    model_config = ConfigDict(extra="forbid")


class ProviderBlock(BaseModel):
    """The ``provider.azurestack`` block."""

    features: Features = Field(default_factory=Features)
    subscription_id: str = Field(
        default="",
        description="Overrides ARM_SUBSCRIPTION_ID for this configuration",
    )

    model_config = ConfigDict(extra="forbid")


BlockMap = Dict[str, Dict[str, Dict[str, Any]]]


class ConfigurationDocument(BaseModel):
    """A whole configuration document."""

    provider: Dict[str, ProviderBlock] = Field(default_factory=dict)
    resource: BlockMap = Field(default_factory=dict)
    data: BlockMap = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: Dict[str, ProviderBlock]) -> Dict[str, ProviderBlock]:
        """Only the azurestack provider may be configured."""
        unknown = sorted(set(v) - {PROVIDER_NAME})
        if unknown:
            raise ValueError(f"unsupported provider(s): {', '.join(unknown)}")
        return v

    @field_validator("resource", "data")
    @classmethod
    def validate_local_names(cls, v: BlockMap) -> BlockMap:
        """Local names must be valid Terraform identifiers."""
        for block_type, blocks in v.items():
            for name in blocks:
                if not LOCAL_NAME_PATTERN.match(name):
                    raise ValueError(f"invalid name {name!r} for {block_type}")
        return v

    @property
    def provider_block(self) -> ProviderBlock:
        return self.provider.get(PROVIDER_NAME) or ProviderBlock()

    @property
    def features(self) -> Features:
        return self.provider_block.features
