"""Domain model for the CloudRift API.

Frozen dataclasses built from the raw ``cloudrift.types`` payloads, plus the
tagged variants used in requests (selectors) and responses (login info,
recipe details). Variant constructors validate their content so that an
invalid selector can never be sent.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cloudrift.core.exceptions import ValidationError
from cloudrift.types import (
    InstanceResponse,
    InstanceTypeResponse,
    RecipeGroupResponse,
    RecipeResponse,
    SSHKeyResponse,
    VirtualMachineResponse,
)

# =============================================================================
# Instances
# =============================================================================


class InstanceStatus(Enum):
    INITIALIZING = "Initializing"
    ACTIVE = "Active"
    DEACTIVATING = "Deactivating"
    INACTIVE = "Inactive"


@dataclass(frozen=True, slots=True)
class UsernameAndPassword:
    username: str
    password: str | None = None


type LoginInfo = UsernameAndPassword


def parse_login_info(raw: dict[str, Any] | None) -> LoginInfo | None:
    """Decode the ``login_info`` union; unknown variants yield None."""
    match raw:
        case {"UsernameAndPassword": {"username": str() as username} as creds}:
            return UsernameAndPassword(username=username, password=creds.get("password"))
        case _:
            return None


@dataclass(frozen=True, slots=True)
class VirtualMachine:
    vmid: int
    name: str
    ready: bool = False
    login_info: LoginInfo | None = None

    @property
    def username(self) -> str | None:
        match self.login_info:
            case UsernameAndPassword(username=username):
                return username
            case _:
                return None

    @classmethod
    def from_response(cls, raw: VirtualMachineResponse) -> VirtualMachine:
        return cls(
            vmid=int(raw["vmid"]),
            name=raw["name"],
            ready=bool(raw.get("ready", False)),
            login_info=parse_login_info(raw.get("login_info")),
        )


@dataclass(frozen=True, slots=True)
class ResourceInfo:
    provider_name: str
    instance_type: str


@dataclass(frozen=True, slots=True)
class Instance:
    """Server-owned view of a rented instance. Only ever observed, never mutated."""

    id: str
    status: InstanceStatus
    node_id: str = ""
    node_mode: str = ""
    node_status: str = ""
    host_address: str | None = None
    internal_host_address: str | None = None
    resource_info: ResourceInfo | None = None
    virtual_machines: tuple[VirtualMachine, ...] = ()

    @property
    def is_ready(self) -> bool:
        """Active and hosting at least one virtual machine that accepts connections."""
        return self.status is InstanceStatus.ACTIVE and any(
            vm.ready for vm in self.virtual_machines
        )

    @classmethod
    def from_response(cls, raw: InstanceResponse) -> Instance:
        info = raw.get("resource_info")
        return cls(
            id=raw["id"],
            status=InstanceStatus(raw["status"]),
            node_id=raw.get("node_id") or "",
            node_mode=raw.get("node_mode") or "",
            node_status=raw.get("node_status") or "",
            host_address=raw.get("host_address"),
            internal_host_address=raw.get("internal_host_address"),
            resource_info=(
                ResourceInfo(provider_name=info["provider_name"], instance_type=info["instance_type"])
                if info
                else None
            ),
            virtual_machines=tuple(
                VirtualMachine.from_response(vm) for vm in raw.get("virtual_machines") or ()
            ),
        )


# =============================================================================
# SSH Keys
# =============================================================================


@dataclass(frozen=True, slots=True)
class SSHKey:
    id: str
    name: str
    public_key: str

    @classmethod
    def from_response(cls, raw: SSHKeyResponse) -> SSHKey:
        return cls(id=raw["id"], name=raw["name"], public_key=raw["public_key"])


# =============================================================================
# Recipes
# =============================================================================


@dataclass(frozen=True, slots=True)
class VirtualMachineRecipe:
    """Where to fetch the base image and the cloud-init script for a VM."""

    cloudinit_url: str = ""
    image_url: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.cloudinit_url or self.image_url)


type RecipeDetails = VirtualMachineRecipe


def parse_recipe_details(raw: Any) -> RecipeDetails | None:
    """Decode the ``details`` union of a recipe.

    Only the ``VirtualMachine`` variant is understood. Other variants and a
    VirtualMachine record with every field empty yield None.
    """
    match raw:
        case {"VirtualMachine": dict() as vm}:
            details = VirtualMachineRecipe(
                cloudinit_url=str(vm.get("cloudinit_url") or ""),
                image_url=str(vm.get("image_url") or ""),
            )
            return None if details.is_empty else details
        case _:
            return None


@dataclass(frozen=True, slots=True)
class Recipe:
    name: str
    description: str = ""
    details: RecipeDetails | None = None

    @classmethod
    def from_response(cls, raw: RecipeResponse) -> Recipe:
        return cls(
            name=raw["name"],
            description=raw.get("description") or "",
            details=parse_recipe_details(raw.get("details")),
        )


@dataclass(frozen=True, slots=True)
class RecipeGroup:
    name: str
    description: str = ""
    recipes: tuple[Recipe, ...] = ()

    @classmethod
    def from_response(cls, raw: RecipeGroupResponse) -> RecipeGroup:
        return cls(
            name=raw.get("name") or "",
            description=raw.get("description") or "",
            recipes=tuple(Recipe.from_response(r) for r in raw.get("recipes") or ()),
        )


# =============================================================================
# Instance Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class DatacenterCapacity:
    """Number of nodes of a variant in a datacenter, not the number currently free."""

    name: str
    count: int


@dataclass(frozen=True, slots=True)
class InstanceVariant:
    name: str
    cpu_count: int = 0
    gpu_count: int | None = None
    disk: int = 0
    dram: int = 0
    cost_per_hour: float = 0.0
    datacenters: tuple[DatacenterCapacity, ...] = ()


@dataclass(frozen=True, slots=True)
class InstanceType:
    name: str
    brand_short: str | None = None
    manufacturer: str | None = None
    variants: tuple[InstanceVariant, ...] = ()

    @classmethod
    def from_response(cls, raw: InstanceTypeResponse) -> InstanceType:
        return cls(
            name=raw["name"],
            brand_short=raw.get("brand_short"),
            manufacturer=raw.get("manufacturer"),
            variants=tuple(
                InstanceVariant(
                    name=v["name"],
                    cpu_count=int(v.get("cpu_count") or 0),
                    gpu_count=v.get("gpu_count"),
                    disk=int(v.get("disk") or 0),
                    dram=int(v.get("dram") or 0),
                    cost_per_hour=float(v.get("cost_per_hour") or 0.0),
                    datacenters=tuple(
                        DatacenterCapacity(name=dc, count=int(count))
                        for dc, count in sorted((v.get("nodes_per_dc") or {}).items())
                    ),
                )
                for v in raw.get("variants") or ()
            ),
        )


# =============================================================================
# Selectors (request-side tagged variants)
# =============================================================================


def _require_values(kind: str, values: tuple[Any, ...]) -> None:
    if not values:
        raise ValidationError(f"{kind} selector needs at least one value")
    if any(v in ("", None) for v in values):
        raise ValidationError(f"{kind} selector contains an empty value")


@dataclass(frozen=True, slots=True)
class ById:
    ids: tuple[str, ...]

    def __post_init__(self) -> None:
        _require_values("ById", self.ids)

    def to_json(self) -> dict[str, Any]:
        return {"ById": list(self.ids)}


@dataclass(frozen=True, slots=True)
class ByStatus:
    statuses: tuple[InstanceStatus, ...]

    def __post_init__(self) -> None:
        _require_values("ByStatus", self.statuses)

    def to_json(self) -> dict[str, Any]:
        return {"ByStatus": [s.value for s in self.statuses]}


type InstancesSelector = ById | ByStatus


@dataclass(frozen=True, slots=True)
class ByInstanceTypeAndLocation:
    instance_type: str
    datacenters: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.instance_type:
            raise ValidationError("empty instance type")
        _require_values("ByInstanceTypeAndLocation", self.datacenters)

    def to_json(self) -> dict[str, Any]:
        return {
            "ByInstanceTypeAndLocation": {
                "instance_type": self.instance_type,
                "datacenters": list(self.datacenters),
            }
        }


type NodeSelector = ByInstanceTypeAndLocation


@dataclass(frozen=True, slots=True)
class PublicKeys:
    keys: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.keys or any(not k for k in self.keys):
            raise ValidationError("no ssh key specified")

    def to_json(self) -> dict[str, Any]:
        return {"PublicKeys": list(self.keys)}


type SshKeySelector = PublicKeys

ALL_INSTANCE_TYPES = "All"


# =============================================================================
# Rent request
# =============================================================================


def decode_startup_commands(encoded: str) -> str:
    """Decode base64 startup commands and strip surrounding whitespace.

    Line breaks in the encoded text are ignored, so wrapped output of
    ``base64 script.sh`` is accepted.
    """
    if not encoded:
        return ""
    try:
        raw = base64.b64decode(encoded.replace("\r", "").replace("\n", ""), validate=True)
        return raw.decode().strip()
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValidationError(f"failed to decode base64 encoded startup commands: {e}") from e


@dataclass(frozen=True, slots=True)
class RentRequest:
    """Everything needed to rent one VM instance.

    Constructing a RentRequest validates it: recipe, datacenter, instance
    type and at least one non-empty public key are required, and
    ``startup_commands`` (base64) must decode.
    """

    recipe: str
    datacenter: str
    instance_type: str
    public_keys: tuple[str, ...]
    startup_commands: str = ""
    commands: str = field(init=False, default="")

    def __post_init__(self) -> None:
        if not self.recipe:
            raise ValidationError("no image specified")
        if not self.public_keys or any(not k for k in self.public_keys):
            raise ValidationError("no ssh key specified")
        if not self.datacenter:
            raise ValidationError("empty datacenter")
        if not self.instance_type:
            raise ValidationError("empty instance")
        object.__setattr__(self, "commands", decode_startup_commands(self.startup_commands))

    @property
    def recipe_key(self) -> str:
        return self.recipe.lower()
