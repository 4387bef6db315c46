"""
Shared pytest fixtures and configuration for spawner tests.

This module provides:
- Settings cache isolation
- Stub backends and spawners with fast poll intervals
- Canonical request payloads

Usage:
    Fixtures are auto-discovered by pytest.

    @pytest.mark.asyncio
    async def test_spawn(spawner, request_payload):
        world = await spawner.spawn(request_payload)
"""

import json
import sys
from pathlib import Path
from typing import Any, Generator

import pytest

# Ensure spawner package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spawner.runtimes.fargate import FargateSpawner
from spawner.runtimes.stub import StubClusterBackend
from spawner.settings import clear_settings_cache

FAST_POLL = 0.01


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and SPAWNER_* env vars around each test."""
    import os

    for key in list(os.environ):
        if key.startswith("SPAWNER_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Payloads
# =============================================================================


def make_request(**overrides: Any) -> str:
    """TaskDefinition payload; keyword arguments replace fields."""
    payload: dict[str, Any] = {
        "name": "svc:3",
        "cluster": "c1",
        "subnets": ["sn-1"],
        "security_groups": ["sg-1"],
        "overrides": [],
    }
    payload.update(overrides)
    return json.dumps(payload)


@pytest.fixture
def request_payload() -> str:
    return make_request()


# =============================================================================
# Backends / spawners
# =============================================================================


@pytest.fixture
def backend() -> StubClusterBackend:
    """Reports RUNNING on the second poll, resolves to 203.0.113.7."""
    return StubClusterBackend(
        statuses=["PENDING", "RUNNING"],
        run_ids=["run-abc"],
        address="203.0.113.7",
    )


@pytest.fixture
def spawner(backend: StubClusterBackend) -> FargateSpawner:
    return FargateSpawner(backend, poll_interval=FAST_POLL, compensation_timeout=1.0)
