"""Base spawner with shared lifecycle logic.

Provides ``BaseSpawner`` with common patterns (request decoding, logging,
error wrapping) shared by every backend variant.

Architecture:

    .. code-block:: text

        Spawner (Protocol)
              │
              ▼
        BaseSpawner (Abstract Base)
        ├── spawn(request) → decode TaskDefinition → _do_spawn()
        ├── kill(world)    → logging + wrapping    → _do_kill()
        └── ps(galaxy)     → galaxy check          → _do_ps()
              │
              ▼
        FargateSpawner (ECS/Fargate via a ClusterBackend)

Usage:
    class MySpawner(BaseSpawner):
        @property
        def name(self) -> str:
            return "my.backend-v1"
        ...
"""

from __future__ import annotations

import asyncio

import structlog

from spawner.context import CallContext
from spawner.errors import DecodeError, SpawnerError
from spawner.runtimes._types import TaskDefinition
from spawner.world import World

logger = structlog.get_logger(__name__)


class BaseSpawner:
    """Base class for spawners.

    Subclasses MUST implement:
        name, _do_spawn, _do_kill, _do_ps

    The base class wraps each call with:
        - Payload decoding (spawn)
        - Structured logging
        - Conversion of stray exceptions to SpawnerError

    .. code-block:: text

        spawn(request)
          ├── TaskDefinition.from_payload()  ← DecodeError, no backend call
          ├── log: spawn_started
          ├── _do_spawn(definition, ctx)     ← subclass implements
          ├── log: spawn_succeeded / spawn_failed
          └── non-SpawnerError → SpawnerError(UNKNOWN), cause chained
    """

    @property
    def name(self) -> str:
        """Unique name for this spawner, including a version tag."""
        raise NotImplementedError

    async def spawn(self, request: bytes | str, ctx: CallContext | None = None) -> World:
        """Decode the request and start a world."""
        ctx = ctx or CallContext()
        definition = TaskDefinition.from_payload(request)
        log = logger.bind(spawner=self.name, template=definition.name, cluster=definition.cluster)
        log.info("spawn_started")
        try:
            world = await self._do_spawn(definition, ctx)
        except (SpawnerError, asyncio.CancelledError) as exc:
            log.warning("spawn_failed", error=str(exc), error_type=type(exc).__name__)
            raise
        except Exception as exc:
            log.error("spawn_failed", error=str(exc), error_type=type(exc).__name__)
            raise SpawnerError(f"spawn: {exc}", spawner=self.name, cause=exc) from exc
        log.info("spawn_succeeded", world_id=world.id, addr=world.addr)
        return world

    async def kill(self, world: World, ctx: CallContext | None = None) -> None:
        """Stop a previously spawned world."""
        ctx = ctx or CallContext()
        log = logger.bind(spawner=self.name, world_id=world.id)
        log.info("kill_started")
        try:
            await self._do_kill(world, ctx)
        except (SpawnerError, asyncio.CancelledError) as exc:
            log.warning("kill_failed", error=str(exc), error_type=type(exc).__name__)
            raise
        except Exception as exc:
            log.error("kill_failed", error=str(exc), error_type=type(exc).__name__)
            raise SpawnerError(f"kill: {exc}", spawner=self.name, cause=exc) from exc
        log.info("kill_succeeded")

    async def ps(self, galaxy: str, ctx: CallContext | None = None) -> list[World]:
        """List running worlds in *galaxy*."""
        if not galaxy:
            raise DecodeError("ps: galaxy is required", spawner=self.name)
        ctx = ctx or CallContext()
        try:
            worlds = await self._do_ps(galaxy, ctx)
        except (SpawnerError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise SpawnerError(f"ps: {exc}", spawner=self.name, cause=exc) from exc
        logger.debug("ps_listed", spawner=self.name, galaxy=galaxy, count=len(worlds))
        return worlds

    # --- Abstract methods for subclasses ---

    async def _do_spawn(self, definition: TaskDefinition, ctx: CallContext) -> World:
        """Implement in subclass."""
        raise NotImplementedError

    async def _do_kill(self, world: World, ctx: CallContext) -> None:
        """Implement in subclass."""
        raise NotImplementedError

    async def _do_ps(self, galaxy: str, ctx: CallContext) -> list[World]:
        """Implement in subclass."""
        raise NotImplementedError
