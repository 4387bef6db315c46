"""Spawners and cluster backends.

Architecture:

    .. code-block:: text

        spawner.runtimes
        ├── __init__.py   ← Public API (this file)
        ├── _types.py     ← Spawner / ClusterBackend protocols + types
        ├── _base.py      ← BaseSpawner (decoding, logging, wrapping)
        ├── fargate.py    ← FargateSpawner (spawn saga, ps, kill) + Task
        ├── ecs.py        ← EcsBackend (boto3 ECS + EC2)
        ├── stub.py       ← StubClusterBackend (scripted, in-memory)
        └── router.py     ← SpawnerRouter (dispatch by World.spawner)
"""

from spawner.runtimes._base import BaseSpawner
from spawner.runtimes._types import (
    Attachment,
    ClusterBackend,
    ContainerOverride,
    NetworkPlacement,
    Spawner,
    SubmitResult,
    TaskDefinition,
    UnitDescription,
    UnitStatus,
)
from spawner.runtimes.fargate import FargateSpawner, Task, eni_from_attachments, join_host_port
from spawner.runtimes.router import SpawnerRouter
from spawner.runtimes.stub import StubClusterBackend

__all__ = [
    "Attachment",
    "BaseSpawner",
    "ClusterBackend",
    "ContainerOverride",
    "FargateSpawner",
    "NetworkPlacement",
    "Spawner",
    "SpawnerRouter",
    "StubClusterBackend",
    "SubmitResult",
    "Task",
    "TaskDefinition",
    "UnitDescription",
    "UnitStatus",
    "eni_from_attachments",
    "join_host_port",
]
