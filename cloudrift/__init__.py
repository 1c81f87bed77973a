"""cloudrift - Async client and lifecycle controller for CloudRift VM instances.

Example:

    import asyncio

    from cloudrift import CloudRift, CloudRiftClient, InstanceController, InstanceState

    async def main():
        async with await CloudRiftClient.create(CloudRift(token="...")) as client:
            controller = InstanceController.from_client(client)
            state = await controller.create(
                InstanceState(
                    recipe="Ubuntu",
                    datacenter="us-east-nc-nr-1",
                    instance_type="rtx49-7c-kn.1",
                    ssh_key_id="7f0b...",
                ),
                persist=save,
            )
            print(state.public_ip)
            await controller.delete(state, persist=save)

    asyncio.run(main())
"""

from cloudrift.client import LIVE_STATUSES, CloudRiftClient
from cloudrift.config import (
    DEFAULT_ENDPOINT,
    DEFAULT_PROTO_VERSION,
    PROTO_2024_09_22,
    PROTO_2025_02_10,
    PROTO_2025_03_21,
    PROTO_2025_05_29,
    PROTO_2025_06_10,
    PROTO_UPCOMING,
    CloudRift,
    load_config,
    load_profile,
)
from cloudrift.core.exceptions import (
    APIError,
    AuthenticationError,
    CancellationError,
    CloudRiftError,
    ConfigurationError,
    CreateError,
    DeleteError,
    InitializationError,
    NotFoundError,
    OperationError,
    ReadError,
    SchemaError,
    TimeoutError,
    TransportError,
    ValidationError,
)
from cloudrift.instances import (
    InstanceController,
    InstanceState,
    VirtualMachineInfo,
)
from cloudrift.logging import LogConfig, logging_enabled, setup_logging, teardown_logging
from cloudrift.model import (
    ById,
    ByInstanceTypeAndLocation,
    ByStatus,
    DatacenterCapacity,
    Instance,
    InstanceStatus,
    InstanceType,
    InstanceVariant,
    PublicKeys,
    Recipe,
    RecipeGroup,
    RentRequest,
    ResourceInfo,
    SSHKey,
    UsernameAndPassword,
    VirtualMachine,
    VirtualMachineRecipe,
)
from cloudrift.recipes import RecipeCache
from cloudrift.retry import exponential, retry
from cloudrift.ssh_keys import SSHKeyManager
from cloudrift.wait import PollTimer, Trigger

__version__ = "0.1.0"

__all__ = [
    # Client
    "CloudRiftClient",
    "LIVE_STATUSES",
    # Config
    "CloudRift",
    "DEFAULT_ENDPOINT",
    "DEFAULT_PROTO_VERSION",
    "PROTO_2024_09_22",
    "PROTO_2025_02_10",
    "PROTO_2025_03_21",
    "PROTO_2025_05_29",
    "PROTO_2025_06_10",
    "PROTO_UPCOMING",
    "load_config",
    "load_profile",
    # Lifecycle
    "InstanceController",
    "InstanceState",
    "VirtualMachineInfo",
    "SSHKeyManager",
    "RecipeCache",
    "PollTimer",
    "Trigger",
    # Model
    "ById",
    "ByInstanceTypeAndLocation",
    "ByStatus",
    "DatacenterCapacity",
    "Instance",
    "InstanceStatus",
    "InstanceType",
    "InstanceVariant",
    "PublicKeys",
    "Recipe",
    "RecipeGroup",
    "RentRequest",
    "ResourceInfo",
    "SSHKey",
    "UsernameAndPassword",
    "VirtualMachine",
    "VirtualMachineRecipe",
    # Retry
    "exponential",
    "retry",
    # Logging
    "LogConfig",
    "logging_enabled",
    "setup_logging",
    "teardown_logging",
    # Exceptions
    "APIError",
    "AuthenticationError",
    "CancellationError",
    "CloudRiftError",
    "ConfigurationError",
    "CreateError",
    "DeleteError",
    "InitializationError",
    "NotFoundError",
    "OperationError",
    "ReadError",
    "SchemaError",
    "TimeoutError",
    "TransportError",
    "ValidationError",
]
