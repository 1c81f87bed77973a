"""Async HTTP client for the CloudRift API."""

from __future__ import annotations

from typing import Any

from loguru import logger

from cloudrift.config import CloudRift
from cloudrift.core.exceptions import (
    APIError,
    AuthenticationError,
    InitializationError,
    NotFoundError,
    SchemaError,
)
from cloudrift.infra.http import ApiKeyAuth, HttpClient, Response
from cloudrift.model import (
    ALL_INSTANCE_TYPES,
    ById,
    ByInstanceTypeAndLocation,
    ByStatus,
    Instance,
    InstancesSelector,
    InstanceStatus,
    InstanceType,
    PublicKeys,
    RecipeGroup,
    RentRequest,
    SSHKey,
)
from cloudrift.recipes import RecipeCache

# Inactive instances are deliberately left out of listings.
LIVE_STATUSES = (
    InstanceStatus.ACTIVE,
    InstanceStatus.INITIALIZING,
    InstanceStatus.DEACTIVATING,
)


def _data(response: Response[Any]) -> Any:
    return response.data["data"]


class CloudRiftClient:
    """Async HTTP client for the CloudRift API.

    Use ``CloudRiftClient.create`` to get a usable client: it authenticates
    and primes the recipe cache before returning.

    Example:
        async with await CloudRiftClient.create(CloudRift(token="...")) as client:
            keys = await client.list_ssh_keys()
    """

    def __init__(self, config: CloudRift, *, http: HttpClient | None = None) -> None:
        if not config.token or not config.base_url or not config.proto_version:
            config = config.resolve()
        self.config = config
        self._http = http or HttpClient(
            config.base_url or "",
            ApiKeyAuth(config.token or ""),
            timeout=config.request_timeout,
            retries=config.retries,
            default_headers={"Content-Type": "application/json"},
        )
        self.recipes = RecipeCache(self.list_recipes)
        self.identity: str | None = None
        self._log = logger.bind(component="client")

    @classmethod
    async def create(
        cls,
        config: CloudRift | None = None,
        *,
        http: HttpClient | None = None,
    ) -> CloudRiftClient:
        """Build, authenticate and prime a client.

        Raises:
            ConfigurationError: If no token can be resolved.
            AuthenticationError: If the token is rejected.
            InitializationError: If no VM recipe is available.
        """
        client = cls((config or CloudRift()).resolve(), http=http)
        try:
            await client.authenticate()
            await client.recipes.refresh()
            if not len(client.recipes):
                raise InitializationError("no recipes for VMs found")
        except BaseException:
            await client.close()
            raise
        client._log.info(
            "Connected to {url} as {email} ({n} VM recipes)",
            url=client.config.base_url, email=client.identity, n=len(client.recipes),
        )
        return client

    async def __aenter__(self) -> CloudRiftClient:
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.close()

    def _body(self, data: dict[str, Any] | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"version": self.config.proto_version}
        if data is not None:
            body["data"] = data
        return body

    # =========================================================================
    # Auth
    # =========================================================================

    async def authenticate(self) -> str:
        """Verify the token and return the identity it belongs to."""
        try:
            email: str = await self._http.execute(
                "POST", "/api/v1/auth/me", parse=lambda r: _data(r).get("email") or "",
            )
        except APIError as e:
            if e.status in (401, 403):
                raise AuthenticationError(f"invalid api token: HTTP {e.status}") from e
            raise
        if not email:
            raise AuthenticationError("invalid api token")
        self.identity = email
        return email

    # =========================================================================
    # Recipes & Instance Types
    # =========================================================================

    async def list_recipes(self) -> list[RecipeGroup]:
        return await self._http.execute(
            "POST",
            "/api/v1/recipes/list",
            json=self._body({}),
            parse=lambda r: [RecipeGroup.from_response(g) for g in _data(r)["groups"]],
        )

    async def list_instance_types(self) -> list[InstanceType]:
        return await self._http.execute(
            "POST",
            "/api/v1/instance-types/list",
            json=self._body({"selector": ALL_INSTANCE_TYPES}),
            parse=lambda r: [
                InstanceType.from_response(t) for t in _data(r)["instance_types"]
            ],
        )

    # =========================================================================
    # SSH Keys
    # =========================================================================

    async def list_ssh_keys(self) -> list[SSHKey]:
        return await self._http.execute(
            "POST",
            "/api/v1/ssh-keys/list",
            json=self._body({}),
            parse=lambda r: [SSHKey.from_response(k) for k in _data(r)["keys"]],
        )

    async def add_ssh_key(self, name: str, public_key: str) -> SSHKey:
        def parse(r: Response[Any]) -> SSHKey:
            if r.status != 201:
                raise SchemaError(
                    f"adding ssh-key expected a response with code 201, got {r.status}"
                )
            return SSHKey.from_response(_data(r)["public_key"])

        return await self._http.execute(
            "POST",
            "/api/v1/ssh-keys/add",
            json=self._body({"name": name, "public_key": public_key}),
            parse=parse,
        )

    async def delete_ssh_key(self, key_id: str) -> None:
        await self._http.execute(
            "DELETE", f"/api/v1/ssh-keys/{key_id}", parse=lambda _: None,
        )

    # =========================================================================
    # Instances
    # =========================================================================

    async def rent_instance(self, request: RentRequest) -> tuple[str, ...]:
        """Rent a VM instance and return the instance ids the server assigned."""
        details = await self.recipes.find(request.recipe_key)

        config = {
            "VirtualMachine": {
                "cloudinit_url": details.cloudinit_url,
                "image_url": details.image_url,
                "cloudinit_commands": request.commands,
                "ssh_key": PublicKeys(request.public_keys).to_json(),
            }
        }
        selector = ByInstanceTypeAndLocation(
            instance_type=request.instance_type,
            datacenters=(request.datacenter,),
        )
        self._log.debug(
            "Renting {type} in {dc} with recipe {recipe}",
            type=request.instance_type, dc=request.datacenter, recipe=request.recipe_key,
        )
        return await self._http.execute(
            "POST",
            "/api/v1/instances/rent",
            json=self._body({
                "selector": selector.to_json(),
                "with_public_ip": True,
                "config": config,
            }),
            parse=lambda r: tuple(str(i) for i in _data(r)["instance_ids"]),
        )

    async def terminate_instance(self, instance_id: str) -> None:
        await self._http.execute(
            "POST",
            "/api/v1/instances/terminate",
            json=self._body({"selector": ById((instance_id,)).to_json()}),
            parse=lambda _: None,
        )

    async def list_instances(self, selector: InstancesSelector | None = None) -> list[Instance]:
        """List instances; by default every instance that is not Inactive."""
        selector = selector or ByStatus(LIVE_STATUSES)
        return await self._http.execute(
            "POST",
            "/api/v1/instances/list",
            json=self._body({"selector": selector.to_json()}),
            parse=lambda r: [Instance.from_response(i) for i in _data(r)["instances"]],
        )

    async def get_instance(self, instance_id: str) -> Instance:
        """Fetch one instance by id.

        Listing by id also returns Inactive instances; those are reported as
        absent.

        Raises:
            NotFoundError: If the instance does not exist or is Inactive.
        """
        for instance in await self.list_instances(ById((instance_id,))):
            if instance.id != instance_id:
                continue
            if instance.status is InstanceStatus.INACTIVE:
                raise NotFoundError(f"instance {instance_id} is inactive")
            return instance
        raise NotFoundError(f"instance {instance_id} not found")
