from __future__ import annotations

import copy
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from cloudrift.client import CloudRiftClient
from cloudrift.config import CloudRift
from cloudrift.infra.http import API_KEY_HEADER

TOKEN = "test-token"
EMAIL = "user@cloudrift.ai"

UBUNTU = {
    "name": "Ubuntu",
    "description": "Ubuntu 24.04 server",
    "details": {
        "VirtualMachine": {
            "cloudinit_url": "https://images.cloudrift.ai/cloudinit/ubuntu.yaml",
            "image_url": "https://images.cloudrift.ai/ubuntu-24.04.img",
        }
    },
}

JUPYTER = {
    "name": "Jupyter",
    "description": "JupyterLab container",
    "details": {"ContainerImage": {"image_url": "quay.io/jupyter/base-notebook"}},
}

LAPTOP_KEY = {
    "id": "key-1",
    "name": "laptop",
    "public_key": "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIExample laptop",
}


def instance_json(
    instance_id: str = "inst-1",
    status: str = "Initializing",
    *,
    ready: bool | None = None,
    host_address: str | None = "203.0.113.10",
) -> dict[str, Any]:
    """An instance payload as returned by /api/v1/instances/list."""
    body: dict[str, Any] = {
        "id": instance_id,
        "status": status,
        "node_id": "node-7",
        "node_mode": "VirtualMachine",
        "node_status": "Ready",
        "host_address": host_address,
        "internal_host_address": "10.0.0.10",
        "resource_info": {"provider_name": "cloudrift", "instance_type": "rtx49-7c-kn.1"},
        "virtual_machines": [],
    }
    if ready is not None:
        body["virtual_machines"] = [
            {
                "vmid": 101,
                "name": f"{instance_id}-vm",
                "ready": ready,
                "login_info": {"UsernameAndPassword": {"username": "riftuser", "password": None}},
            }
        ]
    return body


class FakeCloudRift:
    """In-memory CloudRift API.

    ``snapshots[id]`` scripts what listing by id returns, one entry per call;
    ``None`` means the instance is absent. The last entry repeats once the
    script is exhausted.
    """

    def __init__(self) -> None:
        self.token = TOKEN
        self.email = EMAIL
        self.recipe_groups: list[dict[str, Any]] = [
            {"name": "Linux", "description": "", "recipes": [UBUNTU, JUPYTER]},
        ]
        self.keys: list[dict[str, Any]] = [dict(LAPTOP_KEY)]
        self.rent_ids: list[str] = ["inst-1"]
        # replaces the whole rent response body when set
        self.rent_payload: dict[str, Any] | None = None
        self.snapshots: dict[str, list[dict[str, Any] | None]] = {}
        self.instance_types: list[dict[str, Any]] = [
            {
                "name": "rtx49",
                "brand_short": "RTX 4090",
                "manufacturer": "NVIDIA",
                "variants": [
                    {
                        "name": "rtx49-7c-kn.1",
                        "cpu_count": 7,
                        "gpu_count": 1,
                        "disk": 500,
                        "dram": 64,
                        "cost_per_hour": 0.39,
                        "nodes_per_dc": {"us-east-nc-nr-1": 3, "eu-north-1": 1},
                    }
                ],
            }
        ]
        # path -> statuses returned (and consumed) before the handler runs
        self.failures: dict[str, list[int]] = {}
        self.requests: list[tuple[str, str, Any]] = []
        self._next_key = 2

    def paths(self, path: str) -> list[Any]:
        return [body for _, p, body in self.requests if p == path]

    # ─── Handlers ────────────────────────────────────────────────────

    @web.middleware
    async def middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        body = await request.json() if request.can_read_body else None
        self.requests.append((request.method, request.path, body))
        if request.headers.get(API_KEY_HEADER) != self.token:
            return web.Response(status=401, text="invalid token")
        if pending := self.failures.get(request.path):
            return web.Response(status=pending.pop(0), text="injected failure")
        request["body"] = body
        return await handler(request)

    async def auth_me(self, _: web.Request) -> web.Response:
        return web.json_response({"data": {"email": self.email}})

    async def list_recipes(self, _: web.Request) -> web.Response:
        return web.json_response({"data": {"groups": self.recipe_groups}})

    async def list_keys(self, _: web.Request) -> web.Response:
        return web.json_response({"data": {"keys": self.keys}})

    async def add_key(self, request: web.Request) -> web.Response:
        data = request["body"]["data"]
        key = {"id": f"key-{self._next_key}", "name": data["name"], "public_key": data["public_key"]}
        self._next_key += 1
        self.keys.append(key)
        return web.json_response({"data": {"public_key": key}}, status=201)

    async def delete_key(self, request: web.Request) -> web.Response:
        key_id = request.match_info["key_id"]
        if not any(k["id"] == key_id for k in self.keys):
            return web.json_response({"error": "not found"}, status=404)
        self.keys = [k for k in self.keys if k["id"] != key_id]
        return web.json_response({})

    async def rent(self, _: web.Request) -> web.Response:
        if self.rent_payload is not None:
            return web.json_response(self.rent_payload)
        for instance_id in self.rent_ids:
            self.snapshots.setdefault(instance_id, [instance_json(instance_id)])
        return web.json_response({"data": {"instance_ids": self.rent_ids}})

    async def terminate(self, request: web.Request) -> web.Response:
        ids = request["body"]["data"]["selector"]["ById"]
        live = [i for i in ids if (s := self._peek(i)) is not None and s["status"] != "Inactive"]
        if not live:
            return web.json_response({"error": "not found"}, status=404)
        for instance_id in live:
            current = self._peek(instance_id) or {}
            self.snapshots[instance_id] = [
                {**current, "status": "Deactivating"},
                {**current, "status": "Inactive"},
            ]
        return web.json_response({"data": {"terminated": live}})

    async def list_instances(self, request: web.Request) -> web.Response:
        selector = request["body"]["data"]["selector"]
        match selector:
            case {"ById": ids}:
                found = [s for i in ids if (s := self._next_snapshot(i)) is not None]
            case {"ByStatus": statuses}:
                found = [
                    s for i in self.snapshots
                    if (s := self._peek(i)) is not None and s["status"] in statuses
                ]
            case _:
                return web.Response(status=400, text="bad selector")
        return web.json_response({"data": {"instances": found}})

    async def list_instance_types(self, _: web.Request) -> web.Response:
        return web.json_response({"data": {"instance_types": self.instance_types}})

    def _peek(self, instance_id: str) -> dict[str, Any] | None:
        script = self.snapshots.get(instance_id)
        return copy.deepcopy(script[0]) if script else None

    def _next_snapshot(self, instance_id: str) -> dict[str, Any] | None:
        script = self.snapshots.get(instance_id)
        if not script:
            return None
        current = script.pop(0) if len(script) > 1 else script[0]
        return copy.deepcopy(current)

    def app(self) -> web.Application:
        app = web.Application(middlewares=[self.middleware])
        app.router.add_post("/api/v1/auth/me", self.auth_me)
        app.router.add_post("/api/v1/recipes/list", self.list_recipes)
        app.router.add_post("/api/v1/ssh-keys/list", self.list_keys)
        app.router.add_post("/api/v1/ssh-keys/add", self.add_key)
        app.router.add_delete("/api/v1/ssh-keys/{key_id}", self.delete_key)
        app.router.add_post("/api/v1/instances/rent", self.rent)
        app.router.add_post("/api/v1/instances/terminate", self.terminate)
        app.router.add_post("/api/v1/instances/list", self.list_instances)
        app.router.add_post("/api/v1/instance-types/list", self.list_instance_types)
        return app


@pytest.fixture
def fake() -> FakeCloudRift:
    return FakeCloudRift()


@pytest.fixture
async def server(fake: FakeCloudRift):
    srv = TestServer(fake.app())
    await srv.start_server()
    yield srv
    await srv.close()


@pytest.fixture
def base_url(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}"


@pytest.fixture
def config(base_url: str) -> CloudRift:
    return CloudRift(
        token=TOKEN,
        base_url=base_url,
        retries=0,
        poll_interval=0.01,
        provision_timeout=2.0,
    )


@pytest.fixture
async def client(config: CloudRift):
    c = await CloudRiftClient.create(config)
    yield c
    await c.close()
