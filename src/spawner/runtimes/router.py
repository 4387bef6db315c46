"""Spawner router: registry of spawners keyed by name.

``World.details`` is only meaningful to the spawner that produced it, and
``World.spawner`` names that spawner. The router uses that tag to send
``kill`` to the right variant, and sends ``spawn`` / ``ps`` to an explicitly
named spawner or the default one.

Architecture:

    .. code-block:: text

        SpawnerRouter
        ┌──────────────────────────────────────────────────────────┐
        │  register(spawner)     → stores by spawner.name          │
        │  unregister(name)      → removes spawner                 │
        │  get(name)             → exact lookup                    │
        │  list_spawners()       → registered names                │
        │  set_default(name)     → target for spawn/ps             │
        │                                                          │
        │  spawn(request, name=None)  → default or named spawner   │
        │  ps(galaxy, name=None)      → default or named spawner   │
        │  kill(world)                → spawner named world.spawner│
        └──────────────────────────────────────────────────────────┘

Example:
    >>> router = SpawnerRouter()
    >>> router.register(FargateSpawner(backend))
    >>> world = await router.spawn(payload)
    >>> await router.kill(world)   # routed by world.spawner
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from spawner.errors import DecodeError, SpawnerError

if TYPE_CHECKING:
    from spawner.context import CallContext
    from spawner.runtimes._types import Spawner
    from spawner.world import World

logger = structlog.get_logger(__name__)


class SpawnerRouter:
    """Registry and router for spawners.

    Routing order for spawn/ps:

    1. If a name is given → exact match
    2. Otherwise → the default spawner (first registered unless set)
    3. No match → ``SpawnerError``
    """

    def __init__(self) -> None:
        self._spawners: dict[str, Spawner] = {}
        self._default_name: str | None = None

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, spawner: Spawner) -> None:
        """Register a spawner under its ``name``.

        Replaces (with a warning) a spawner already registered under the
        same name. The first registered spawner becomes the default.
        """
        name = spawner.name
        if name in self._spawners:
            logger.warning("spawner_replaced", spawner=name)
        self._spawners[name] = spawner
        if self._default_name is None:
            self._default_name = name
        logger.info("spawner_registered", spawner=name)

    def unregister(self, name: str) -> None:
        self._spawners.pop(name, None)
        if self._default_name == name:
            self._default_name = next(iter(self._spawners), None)

    def get(self, name: str) -> Spawner | None:
        return self._spawners.get(name)

    def list_spawners(self) -> list[str]:
        return sorted(self._spawners)

    def set_default(self, name: str) -> None:
        if name not in self._spawners:
            raise SpawnerError(f"cannot set default: spawner {name!r} not registered")
        self._default_name = name

    @property
    def default(self) -> Spawner | None:
        if self._default_name is None:
            return None
        return self._spawners.get(self._default_name)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _select(self, name: str | None) -> Spawner:
        if name is not None:
            spawner = self._spawners.get(name)
            if spawner is None:
                raise SpawnerError(
                    f"spawner {name!r} not registered. Available: {self.list_spawners()}"
                )
            return spawner
        spawner = self.default
        if spawner is None:
            raise SpawnerError("no spawners registered")
        return spawner

    async def spawn(
        self, request: bytes | str, ctx: CallContext | None = None, *, name: str | None = None,
    ) -> World:
        return await self._select(name).spawn(request, ctx)

    async def ps(
        self, galaxy: str, ctx: CallContext | None = None, *, name: str | None = None,
    ) -> list[World]:
        return await self._select(name).ps(galaxy, ctx)

    async def kill(self, world: World, ctx: CallContext | None = None) -> None:
        """Kill *world* with the spawner that produced it."""
        spawner = self._spawners.get(world.spawner)
        if spawner is None:
            raise DecodeError(
                f"world {world.id!r} was spawned by unknown spawner {world.spawner!r}"
            )
        await spawner.kill(world, ctx)
