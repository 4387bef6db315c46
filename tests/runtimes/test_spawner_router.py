"""Tests for SpawnerRouter: spawner registry and routing."""

from __future__ import annotations

import pytest

from conftest import FAST_POLL
from spawner.errors import DecodeError, SpawnerError
from spawner.runtimes.fargate import FargateSpawner
from spawner.runtimes.router import SpawnerRouter
from spawner.runtimes.stub import StubClusterBackend
from spawner.world import World


# ── Helpers ──────────────────────────────────────────────────────────────


class _FakeSpawner:
    """Minimal spawner recording what it was asked to do."""

    def __init__(self, name: str):
        self._name = name
        self.calls: list[tuple[str, object]] = []

    @property
    def name(self) -> str:
        return self._name

    async def spawn(self, request, ctx=None) -> World:
        self.calls.append(("spawn", request))
        return World(id="w-1", spawner=self._name)

    async def kill(self, world, ctx=None) -> None:
        self.calls.append(("kill", world.id))

    async def ps(self, galaxy, ctx=None) -> list[World]:
        self.calls.append(("ps", galaxy))
        return []


# ── Registration ─────────────────────────────────────────────────────────


class TestRegistration:
    def test_register(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        assert router.list_spawners() == ["a-v1"]
        assert router.get("a-v1") is not None

    def test_first_spawner_becomes_default(self):
        router = SpawnerRouter()
        first = _FakeSpawner("a-v1")
        router.register(first)
        router.register(_FakeSpawner("b-v1"))
        assert router.default is first

    def test_set_default(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        second = _FakeSpawner("b-v1")
        router.register(second)
        router.set_default("b-v1")
        assert router.default is second

    def test_set_default_unknown(self):
        router = SpawnerRouter()
        with pytest.raises(SpawnerError):
            router.set_default("nope")

    def test_unregister_default_moves_on(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        second = _FakeSpawner("b-v1")
        router.register(second)
        router.unregister("a-v1")
        assert router.list_spawners() == ["b-v1"]
        assert router.default is second

    def test_unregister_last(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        router.unregister("a-v1")
        assert router.default is None

    def test_reregister_replaces(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        replacement = _FakeSpawner("a-v1")
        router.register(replacement)
        assert router.get("a-v1") is replacement


# ── Routing ──────────────────────────────────────────────────────────────


class TestRouting:
    @pytest.mark.asyncio
    async def test_spawn_uses_default(self):
        router = SpawnerRouter()
        a, b = _FakeSpawner("a-v1"), _FakeSpawner("b-v1")
        router.register(a)
        router.register(b)
        await router.spawn("{}")
        assert a.calls == [("spawn", "{}")]
        assert b.calls == []

    @pytest.mark.asyncio
    async def test_ps_by_name(self):
        router = SpawnerRouter()
        a, b = _FakeSpawner("a-v1"), _FakeSpawner("b-v1")
        router.register(a)
        router.register(b)
        await router.ps("c1", name="b-v1")
        assert b.calls == [("ps", "c1")]

    @pytest.mark.asyncio
    async def test_unknown_name(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        with pytest.raises(SpawnerError, match="not registered"):
            await router.spawn("{}", name="nope")

    @pytest.mark.asyncio
    async def test_empty_router(self):
        with pytest.raises(SpawnerError, match="no spawners registered"):
            await SpawnerRouter().ps("c1")

    @pytest.mark.asyncio
    async def test_kill_routes_by_world_tag(self):
        router = SpawnerRouter()
        a, b = _FakeSpawner("a-v1"), _FakeSpawner("b-v1")
        router.register(a)
        router.register(b)
        await router.kill(World(id="w-9", spawner="b-v1"))
        assert a.calls == []
        assert b.calls == [("kill", "w-9")]

    @pytest.mark.asyncio
    async def test_kill_unknown_tag(self):
        router = SpawnerRouter()
        router.register(_FakeSpawner("a-v1"))
        with pytest.raises(DecodeError):
            await router.kill(World(id="w-9", spawner="zzz-v1"))

    @pytest.mark.asyncio
    async def test_spawn_and_kill_with_fargate(self, request_payload):
        backend = StubClusterBackend(run_ids=["run-abc"])
        router = SpawnerRouter()
        router.register(_FakeSpawner("other-v1"))
        router.register(FargateSpawner(backend, poll_interval=FAST_POLL))

        world = await router.spawn(request_payload, name="ecs.fargate-v1")
        await router.kill(world)

        assert backend.stopped == [("c1", "run-abc")]
