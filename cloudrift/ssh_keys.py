"""SSH key management over the flat collection of registered public keys."""

from __future__ import annotations

import builtins
from typing import Protocol

from loguru import logger

from cloudrift.core.exceptions import NotFoundError, ValidationError
from cloudrift.model import SSHKey


class SSHKeyAPI(Protocol):
    async def list_ssh_keys(self) -> list[SSHKey]: ...
    async def add_ssh_key(self, name: str, public_key: str) -> SSHKey: ...
    async def delete_ssh_key(self, key_id: str) -> None: ...


class SSHKeyManager:
    """Add, list, look up and delete SSH keys.

    Keys are immutable once created: they are identified by id for delete and
    refresh, and by name for lookup. Lookups are linear scans over ``list()``.

    Example:
        keys = SSHKeyManager(client)
        key = await keys.add("laptop", Path("~/.ssh/id_ed25519.pub").expanduser().read_text())
        await keys.delete(key.id)
    """

    def __init__(self, api: SSHKeyAPI) -> None:
        self._api = api
        self._log = logger.bind(component="ssh_keys")

    async def add(self, name: str, public_key: str) -> SSHKey:
        """Register a public key.

        Raises:
            ValidationError: If the name or the key is empty. Nothing is sent.
        """
        if not name:
            raise ValidationError("SSH key name is defined but empty")
        if not public_key:
            raise ValidationError("Public key is defined but empty")

        key = await self._api.add_ssh_key(name, public_key)
        self._log.info("Added SSH key {name} ({id})", name=key.name, id=key.id)
        return key

    async def list(self) -> builtins.list[SSHKey]:
        return await self._api.list_ssh_keys()

    async def delete(self, key_id: str) -> None:
        """Delete a key. A key that is already gone counts as deleted."""
        try:
            await self._api.delete_ssh_key(key_id)
        except NotFoundError:
            self._log.debug("SSH key {id} already deleted", id=key_id)
            return
        self._log.info("Deleted SSH key {id}", id=key_id)

    async def find_by_name(self, name: str) -> SSHKey:
        for key in await self.list():
            if key.name == name:
                return key
        raise NotFoundError(f"Could not find CloudRift SSH Key {name}")

    async def find_by_id(self, key_id: str) -> SSHKey:
        for key in await self.list():
            if key.id == key_id:
                return key
        raise NotFoundError(f"Could not find CloudRift SSH Key with ID: {key_id}")

    async def read(self, key_id: str) -> SSHKey | None:
        """Refresh a tracked key; None means it is gone and should be dropped."""
        try:
            return await self.find_by_id(key_id)
        except NotFoundError:
            return None
