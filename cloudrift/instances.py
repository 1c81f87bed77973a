"""Instance lifecycle controller.

Turns the one-shot rent and terminate calls into convergent operations:

- ``create`` rents exactly one instance and polls it until it is ready, the
  provisioning deadline passes, or the caller cancels.
- ``read`` refreshes a tracked instance; ``None`` tells the caller to stop
  tracking it.
- ``delete`` terminates an instance and polls until it is gone.

Every change to the authoritative view of an instance is handed to the
caller's ``persist`` callback right away, including on failure paths, so an
instance that was rented but never confirmed ready is never lost track of.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from cloudrift.core.exceptions import (
    APIError,
    CancellationError,
    CloudRiftError,
    CreateError,
    DeleteError,
    NotFoundError,
    ReadError,
    SchemaError,
    TimeoutError,
    TransportError,
    ValidationError,
)
from cloudrift.model import Instance, InstanceStatus, RentRequest, decode_startup_commands
from cloudrift.ssh_keys import SSHKeyAPI, SSHKeyManager
from cloudrift.wait import PollTimer, Trigger

if TYPE_CHECKING:
    from cloudrift.client import CloudRiftClient

INSTANCE_POLLING_INTERVAL = 5.0

# Instances are usually ready within 2-6 minutes; the ceiling only exists so
# that a broken provisioning eventually gives up.
PROVISIONING_TIMEOUT = 28 * 60.0

# Request Timeout and Too Many Requests: the request may succeed if repeated.
RETRYABLE_STATUSES = frozenset({408, 429})


# =============================================================================
# Caller state
# =============================================================================


@dataclass(frozen=True, slots=True)
class VirtualMachineInfo:
    vmid: int
    name: str
    username: str | None = None


@dataclass(frozen=True, slots=True)
class InstanceState:
    """Caller-held record of a VM instance.

    ``recipe``, ``datacenter``, ``ssh_key_id`` and ``startup_commands`` are
    only used when renting and are never returned by the API; ``merge``
    carries them over unchanged.
    """

    recipe: str = ""
    datacenter: str = ""
    instance_type: str = ""
    ssh_key_id: str = ""
    startup_commands: str = ""

    id: str | None = None
    status: InstanceStatus | None = None
    node_id: str | None = None
    node_mode: str | None = None
    node_status: str | None = None
    public_ip: str | None = None
    private_ip: str | None = None
    provider_name: str | None = None
    virtual_machines: tuple[VirtualMachineInfo, ...] = ()

    def merge(self, instance: Instance) -> InstanceState:
        """Overlay a server snapshot, keeping caller-owned fields as they are."""
        info = instance.resource_info
        return replace(
            self,
            id=instance.id,
            status=instance.status,
            node_id=instance.node_id,
            node_mode=instance.node_mode,
            node_status=instance.node_status,
            public_ip=instance.host_address if instance.host_address is not None else self.public_ip,
            private_ip=(
                instance.internal_host_address
                if instance.internal_host_address is not None
                else self.private_ip
            ),
            provider_name=info.provider_name if info else self.provider_name,
            instance_type=info.instance_type if info else self.instance_type,
            virtual_machines=tuple(
                VirtualMachineInfo(vmid=vm.vmid, name=vm.name, username=vm.username)
                for vm in instance.virtual_machines
            ),
        )


type Persist = Callable[[InstanceState], None]


def _discard(_: InstanceState) -> None:
    pass


# =============================================================================
# Controller
# =============================================================================


class InstanceAPI(SSHKeyAPI, Protocol):
    async def rent_instance(self, request: RentRequest) -> tuple[str, ...]: ...
    async def get_instance(self, instance_id: str) -> Instance: ...
    async def terminate_instance(self, instance_id: str) -> None: ...


def _is_transient(error: CloudRiftError) -> bool:
    match error:
        case TransportError():
            return True
        case APIError(status=status) if status >= 500 or status in RETRYABLE_STATUSES:
            return True
        case _:
            return False


class InstanceController:
    """Create, read and delete VM instances.

    Args:
        api: The CloudRift client (or anything implementing InstanceAPI).
        poll_interval: Seconds between status polls.
        provision_timeout: Deadline for ``create``; None waits forever.
        delete_timeout: Deadline for ``delete``; None waits until the
            instance is gone or the caller cancels.
    """

    def __init__(
        self,
        api: InstanceAPI,
        *,
        poll_interval: float = INSTANCE_POLLING_INTERVAL,
        provision_timeout: float | None = PROVISIONING_TIMEOUT,
        delete_timeout: float | None = None,
    ) -> None:
        self._api = api
        self._keys = SSHKeyManager(api)
        self.poll_interval = poll_interval
        self.provision_timeout = provision_timeout
        self.delete_timeout = delete_timeout
        self._log = logger.bind(component="instances")

    @classmethod
    def from_client(cls, client: CloudRiftClient) -> InstanceController:
        return cls(
            client,
            poll_interval=client.config.poll_interval,
            provision_timeout=client.config.provision_timeout,
            delete_timeout=client.config.delete_timeout,
        )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def create(
        self,
        plan: InstanceState,
        *,
        cancel: asyncio.Event | None = None,
        persist: Persist = _discard,
    ) -> InstanceState:
        """Rent an instance for ``plan`` and wait until it is ready.

        Returns:
            The plan merged with the first snapshot that was Active with at
            least one ready virtual machine.

        Raises:
            ValidationError: If the plan is incomplete. Nothing is sent.
            NotFoundError: If the SSH key or the recipe does not exist.
            SchemaError: If the rent call did not yield exactly one id.
            TimeoutError: If the provisioning deadline passed first.
            CancellationError: If ``cancel`` was set first.
            CreateError: If polling the rented instance failed.
        """
        self._validate(plan)

        key = await self._keys.find_by_id(plan.ssh_key_id)
        request = RentRequest(
            recipe=plan.recipe,
            datacenter=plan.datacenter,
            instance_type=plan.instance_type,
            public_keys=(key.public_key,),
            startup_commands=plan.startup_commands,
        )

        ids = await self._api.rent_instance(request)
        if len(ids) != 1:
            if ids:
                self._log.error("Rent returned several instance ids: {ids}", ids=list(ids))
            raise SchemaError(
                f"renting instance must yield exactly one instance id, got {len(ids)}: {list(ids)}"
            )

        instance_id = ids[0]
        state = replace(plan, id=instance_id)
        persist(state)

        log = self._log.bind(instance_id=instance_id)
        log.info("Rented instance, waiting until ready")
        return await self._await_ready(state, cancel=cancel, persist=persist)

    def _validate(self, plan: InstanceState) -> None:
        if not plan.recipe:
            raise ValidationError("no image specified")
        if not plan.datacenter:
            raise ValidationError("empty datacenter")
        if not plan.instance_type:
            raise ValidationError("empty instance")
        if not plan.ssh_key_id:
            raise ValidationError("no ssh key specified")
        decode_startup_commands(plan.startup_commands)

    async def _await_ready(
        self,
        state: InstanceState,
        *,
        cancel: asyncio.Event | None,
        persist: Persist,
    ) -> InstanceState:
        instance_id = state.id or ""
        log = self._log.bind(instance_id=instance_id)
        timer = PollTimer(self.poll_interval, timeout=self.provision_timeout, cancel=cancel)
        last: Instance | None = None

        def settle() -> InstanceState:
            settled = state.merge(last) if last is not None else state
            persist(settled)
            return settled

        try:
            while True:
                match await timer.next():
                    case Trigger.DEADLINE:
                        log.warning("Provisioning timeout reached")
                        raise TimeoutError(
                            f"Provisioning timeout reached before instance {instance_id} was ready",
                            state=settle(),
                        )
                    case Trigger.CANCELED:
                        log.warning("Polling canceled")
                        raise CancellationError(
                            f"Polling canceled before instance {instance_id} was ready",
                            state=settle(),
                        )
                    case Trigger.TICK:
                        try:
                            current = await self._api.get_instance(instance_id)
                        except CloudRiftError as e:
                            if _is_transient(e):
                                log.warning("Polling failed, retrying on next tick: {error}", error=e)
                                continue
                            raise CreateError(instance_id, e, state=settle()) from e

                        last = current
                        log.debug(
                            "Status {status}, VMs ready: {ready}",
                            status=current.status.value,
                            ready=sum(vm.ready for vm in current.virtual_machines),
                        )
                        if current.is_ready:
                            ready = settle()
                            log.info("Instance ready at {ip}", ip=ready.public_ip)
                            return ready
        except CloudRiftError:
            raise
        except BaseException:
            settle()
            raise

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def read(self, state: InstanceState) -> InstanceState | None:
        """Refresh ``state`` from the API.

        Returns:
            The merged state, or None when the instance no longer exists (or
            is Inactive) and should be dropped from tracked state.

        Raises:
            ReadError: For any failure other than absence.
        """
        if not state.id:
            raise ValidationError("instance state has no id")
        try:
            instance = await self._api.get_instance(state.id)
        except NotFoundError:
            self._log.bind(instance_id=state.id).info("Instance gone, dropping it")
            return None
        except CloudRiftError as e:
            raise ReadError(state.id, e, state=state) from e
        return state.merge(instance)

    async def import_state(self, instance_id: str) -> InstanceState | None:
        """Start tracking an existing instance by id."""
        return await self.read(InstanceState(id=instance_id))

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete(
        self,
        state: InstanceState,
        *,
        cancel: asyncio.Event | None = None,
        persist: Persist = _discard,
    ) -> None:
        """Terminate the instance and wait until the API no longer returns it.

        An instance that is already gone counts as deleted.

        Raises:
            CancellationError: If ``cancel`` was set first. The instance is
                already marked for termination at that point.
            TimeoutError: If ``delete_timeout`` is set and passed first.
            DeleteError: If terminating or polling failed.
        """
        if not state.id:
            raise ValidationError("instance state has no id")
        instance_id = state.id
        log = self._log.bind(instance_id=instance_id)

        try:
            await self._api.terminate_instance(instance_id)
        except NotFoundError:
            log.info("Instance already deleted")
            return
        except CloudRiftError as e:
            raise DeleteError(instance_id, e, state=state) from e

        log.info("Instance marked for termination, waiting until gone")
        timer = PollTimer(self.poll_interval, timeout=self.delete_timeout, cancel=cancel)

        try:
            while True:
                match await timer.next():
                    case Trigger.DEADLINE:
                        raise TimeoutError(
                            f"Timeout reached before instance {instance_id} was destroyed",
                            state=state,
                        )
                    case Trigger.CANCELED:
                        raise CancellationError(
                            f"Polling canceled before instance {instance_id} was destroyed",
                            state=state,
                        )
                    case Trigger.TICK:
                        try:
                            current = await self._api.get_instance(instance_id)
                        except NotFoundError:
                            log.info("Instance destroyed")
                            return
                        except CloudRiftError as e:
                            raise DeleteError(instance_id, e, state=state) from e
                        state = state.merge(current)
                        persist(state)
        except CloudRiftError:
            raise
        except BaseException:
            persist(state)
            raise
