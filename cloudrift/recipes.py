"""Lookup cache from recipe name to VM provisioning details.

The cache is derived from the recipe listing: every recipe whose details
decode to a non-empty VirtualMachine variant is stored under its lower-cased
name. Entries never expire; a lookup miss triggers exactly one refresh.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger

from cloudrift.core.exceptions import NotFoundError
from cloudrift.model import RecipeGroup, VirtualMachineRecipe

type FetchRecipes = Callable[[], Awaitable[Sequence[RecipeGroup]]]


class RecipeCache:
    """Recipe name -> VirtualMachineRecipe, shared by concurrent lifecycle flows.

    All mutation happens under an asyncio.Lock. A lookup that misses and then
    finds another flow already refreshed the mapping while it was waiting for
    the lock does not refresh a second time.
    """

    def __init__(self, fetch: FetchRecipes) -> None:
        self._fetch = fetch
        self._recipes: dict[str, VirtualMachineRecipe] = {}
        self._lock = asyncio.Lock()
        self._generation = 0
        self._log = logger.bind(component="recipes")

    def __len__(self) -> int:
        return len(self._recipes)

    def names(self) -> list[str]:
        return sorted(self._recipes)

    async def refresh(self) -> None:
        async with self._lock:
            await self._refresh_locked()

    async def _refresh_locked(self) -> None:
        groups = await self._fetch()
        added = 0
        for group in groups:
            for recipe in group.recipes:
                if recipe.details is None:
                    continue
                self._recipes[recipe.name.lower()] = recipe.details
                added += 1
        self._generation += 1
        self._log.debug("Recipe cache refreshed: {n} VM recipes", n=added)

    async def find(self, name: str) -> VirtualMachineRecipe:
        """Resolve a recipe case-insensitively, refreshing once on a miss.

        Raises:
            NotFoundError: If the recipe is still unknown after the refresh.
        """
        key = name.lower()
        if (found := self._recipes.get(key)) is not None:
            return found

        seen = self._generation
        async with self._lock:
            if self._generation == seen:
                self._log.debug("Recipe {name} not cached, refreshing", name=key)
                await self._refresh_locked()
            found = self._recipes.get(key)

        if found is None:
            available = ", ".join(self.names()) or "none"
            raise NotFoundError(f"recipe {name} not found, available: {available}")
        return found
