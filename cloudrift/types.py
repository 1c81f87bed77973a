"""CloudRift API response types.

TypedDicts for API payloads, consumed as-is and converted into the frozen
dataclasses of ``cloudrift.model`` at the client boundary.
"""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

# =============================================================================
# Auth
# =============================================================================


class IdentityResponse(TypedDict):
    email: str


# =============================================================================
# Recipes
# =============================================================================


class VirtualMachineDetailsResponse(TypedDict, total=False):
    cloudinit_url: str
    image_url: str


class RecipeResponse(TypedDict):
    name: str
    description: NotRequired[str]
    # Tagged union, e.g. {"VirtualMachine": {...}} or {"Container": {...}}
    details: NotRequired[dict[str, Any] | None]


class RecipeGroupResponse(TypedDict):
    name: NotRequired[str]
    description: NotRequired[str]
    recipes: list[RecipeResponse]


class ListRecipesResponse(TypedDict):
    groups: list[RecipeGroupResponse]


# =============================================================================
# SSH Keys
# =============================================================================


class SSHKeyResponse(TypedDict):
    id: str
    name: str
    public_key: str


class ListSSHKeysResponse(TypedDict):
    keys: list[SSHKeyResponse]


class AddSSHKeyResponse(TypedDict):
    public_key: SSHKeyResponse


# =============================================================================
# Instances
# =============================================================================


class UsernameAndPasswordResponse(TypedDict):
    username: str
    password: NotRequired[str | None]


class VirtualMachineResponse(TypedDict):
    vmid: int
    name: str
    ready: NotRequired[bool]
    # Tagged union, e.g. {"UsernameAndPassword": {...}}
    login_info: NotRequired[dict[str, Any] | None]


class ResourceInfoResponse(TypedDict):
    provider_name: str
    instance_type: str


class InstanceResponse(TypedDict):
    id: str
    status: str  # Initializing, Active, Deactivating, Inactive
    node_id: NotRequired[str]
    node_mode: NotRequired[str]
    node_status: NotRequired[str]
    host_address: NotRequired[str | None]
    internal_host_address: NotRequired[str | None]
    resource_info: NotRequired[ResourceInfoResponse | None]
    virtual_machines: NotRequired[list[VirtualMachineResponse] | None]


class ListInstancesResponse(TypedDict):
    instances: list[InstanceResponse]


class RentInstanceResponse(TypedDict):
    instance_ids: list[str]


# =============================================================================
# Instance Types
# =============================================================================


class InstanceVariantResponse(TypedDict):
    name: str
    cpu_count: NotRequired[int]
    gpu_count: NotRequired[int | None]
    disk: NotRequired[int]
    dram: NotRequired[int]
    cost_per_hour: NotRequired[float]
    nodes_per_dc: NotRequired[dict[str, int] | None]


class InstanceTypeResponse(TypedDict):
    name: str
    brand_short: NotRequired[str | None]
    manufacturer: NotRequired[str | None]
    variants: NotRequired[list[InstanceVariantResponse] | None]


class ListInstanceTypesResponse(TypedDict):
    instance_types: list[InstanceTypeResponse]
