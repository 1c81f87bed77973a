from __future__ import annotations

import base64

import pytest

from cloudrift.client import CloudRiftClient
from cloudrift.config import CloudRift
from cloudrift.core.exceptions import (
    APIError,
    AuthenticationError,
    InitializationError,
    NotFoundError,
    SchemaError,
)
from cloudrift.model import ById, InstanceStatus, RentRequest

from tests.conftest import UBUNTU, FakeCloudRift, instance_json

pytestmark = [pytest.mark.integration, pytest.mark.xdist_group("unit")]


# ─── Construction ────────────────────────────────────────────────────


async def test_create_authenticates_and_primes_recipes(client: CloudRiftClient, fake: FakeCloudRift):
    assert client.identity == "user@cloudrift.ai"
    assert client.recipes.names() == ["ubuntu"]
    assert [p for _, p, _ in fake.requests] == ["/api/v1/auth/me", "/api/v1/recipes/list"]


async def test_every_body_carries_the_protocol_version(client: CloudRiftClient, fake: FakeCloudRift):
    await client.list_ssh_keys()
    assert fake.paths("/api/v1/ssh-keys/list") == [{"version": "2025-06-10", "data": {}}]


async def test_rejected_token(config: CloudRift, fake: FakeCloudRift):
    fake.token = "another-token"
    with pytest.raises(AuthenticationError, match="401"):
        await CloudRiftClient.create(config)


async def test_empty_identity(config: CloudRift, fake: FakeCloudRift):
    fake.email = ""
    with pytest.raises(AuthenticationError):
        await CloudRiftClient.create(config)


async def test_no_vm_recipes_is_fatal(config: CloudRift, fake: FakeCloudRift):
    fake.recipe_groups = [{"name": "Containers", "recipes": [{"name": "Jupyter", "details": {"ContainerImage": {}}}]}]
    with pytest.raises(InitializationError, match="no recipes"):
        await CloudRiftClient.create(config)


async def test_recipe_listing_error_propagates(config: CloudRift, fake: FakeCloudRift):
    fake.failures["/api/v1/recipes/list"] = [503]
    with pytest.raises(APIError) as exc_info:
        await CloudRiftClient.create(config)
    assert exc_info.value.status == 503


async def test_token_from_environment(base_url: str, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("CLOUDRIFT_TOKEN", "test-token")
    client = await CloudRiftClient.create(CloudRift(base_url=base_url, retries=0))
    try:
        assert client.config.token == "test-token"
    finally:
        await client.close()


# ─── Instance types ──────────────────────────────────────────────────


async def test_list_instance_types(client: CloudRiftClient, fake: FakeCloudRift):
    types = await client.list_instance_types()

    assert fake.paths("/api/v1/instance-types/list")[0]["data"] == {"selector": "All"}
    variant = types[0].variants[0]
    assert types[0].brand_short == "RTX 4090"
    assert variant.cost_per_hour == 0.39
    assert {dc.name: dc.count for dc in variant.datacenters} == {"eu-north-1": 1, "us-east-nc-nr-1": 3}


# ─── Instances ───────────────────────────────────────────────────────


async def test_rent_sends_recipe_config(client: CloudRiftClient, fake: FakeCloudRift):
    request = RentRequest(
        recipe="UBUNTU",
        datacenter="us-east-nc-nr-1",
        instance_type="rtx49-7c-kn.1",
        public_keys=("ssh-ed25519 AAA",),
        startup_commands=base64.b64encode(b"  echo ready  \n").decode(),
    )

    assert await client.rent_instance(request) == ("inst-1",)

    data = fake.paths("/api/v1/instances/rent")[0]["data"]
    vm = UBUNTU["details"]["VirtualMachine"]
    assert data == {
        "selector": {
            "ByInstanceTypeAndLocation": {
                "instance_type": "rtx49-7c-kn.1",
                "datacenters": ["us-east-nc-nr-1"],
            }
        },
        "with_public_ip": True,
        "config": {
            "VirtualMachine": {
                "cloudinit_url": vm["cloudinit_url"],
                "image_url": vm["image_url"],
                "cloudinit_commands": "echo ready",
                "ssh_key": {"PublicKeys": ["ssh-ed25519 AAA"]},
            }
        },
    }


async def test_rent_unknown_recipe_refreshes_then_fails(client: CloudRiftClient, fake: FakeCloudRift):
    request = RentRequest(
        recipe="Arch",
        datacenter="us-east-nc-nr-1",
        instance_type="rtx49-7c-kn.1",
        public_keys=("ssh-ed25519 AAA",),
    )
    with pytest.raises(NotFoundError, match="recipe arch not found, available: ubuntu"):
        await client.rent_instance(request)

    assert len(fake.paths("/api/v1/recipes/list")) == 2
    assert fake.paths("/api/v1/instances/rent") == []


async def test_rent_missing_ids_is_schema_error(client: CloudRiftClient, fake: FakeCloudRift):
    request = RentRequest("Ubuntu", "dc", "t", ("ssh-ed25519 AAA",))
    fake.rent_payload = {"data": {}}
    with pytest.raises(SchemaError):
        await client.rent_instance(request)


async def test_get_instance(client: CloudRiftClient, fake: FakeCloudRift):
    fake.snapshots["inst-1"] = [instance_json("inst-1", "Active", ready=True)]

    instance = await client.get_instance("inst-1")

    assert instance.status is InstanceStatus.ACTIVE
    assert fake.paths("/api/v1/instances/list")[0]["data"] == {"selector": {"ById": ["inst-1"]}}


async def test_get_inactive_instance_is_not_found(client: CloudRiftClient, fake: FakeCloudRift):
    fake.snapshots["inst-1"] = [instance_json("inst-1", "Inactive")]
    with pytest.raises(NotFoundError, match="inactive"):
        await client.get_instance("inst-1")


async def test_get_missing_instance(client: CloudRiftClient):
    with pytest.raises(NotFoundError):
        await client.get_instance("ghost")


async def test_list_instances_skips_inactive(client: CloudRiftClient, fake: FakeCloudRift):
    fake.snapshots = {
        "a": [instance_json("a", "Active")],
        "b": [instance_json("b", "Inactive")],
        "c": [instance_json("c", "Deactivating")],
    }

    instances = await client.list_instances()

    assert sorted(i.id for i in instances) == ["a", "c"]
    selector = fake.paths("/api/v1/instances/list")[0]["data"]["selector"]
    assert sorted(selector["ByStatus"]) == ["Active", "Deactivating", "Initializing"]


async def test_list_instances_by_id(client: CloudRiftClient, fake: FakeCloudRift):
    fake.snapshots = {"a": [instance_json("a", "Inactive")]}
    instances = await client.list_instances(ById(("a",)))
    assert [i.status for i in instances] == [InstanceStatus.INACTIVE]


async def test_terminate_missing_instance_is_not_found(client: CloudRiftClient):
    with pytest.raises(NotFoundError):
        await client.terminate_instance("ghost")
