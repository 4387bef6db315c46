"""spawner: launch, observe and tear down worlds on a cluster backend.

A *world* is a remotely running unit (an ECS task on Fargate) reachable at
one network address. Spawners expose a uniform lifecycle:

- ``spawn(request)`` → World (waits until the unit runs and has an address)
- ``kill(world)``    → stop a previously spawned world
- ``ps(galaxy)``     → running worlds in an execution domain

Example:
    >>> from spawner import CallContext, FargateSpawner
    >>> from spawner.runtimes.ecs import EcsBackend
    >>> spawner = FargateSpawner(EcsBackend())
    >>> world = await spawner.spawn(payload, CallContext(timeout=120))
"""

from spawner.context import CallContext
from spawner.errors import (
    AttachmentResolutionError,
    BackendRejectionError,
    CancellationError,
    ConfigurationError,
    ContextCancelled,
    DeadlineExceeded,
    DecodeError,
    ErrorCategory,
    SpawnerError,
    TransientQueryError,
    is_cancellation,
)
from spawner.runtimes import (
    BaseSpawner,
    ClusterBackend,
    FargateSpawner,
    Spawner,
    SpawnerRouter,
    StubClusterBackend,
    Task,
    TaskDefinition,
)
from spawner.world import World, decode_world, decode_worlds, encode_worlds

__version__ = "0.1.0"

__all__ = [
    "AttachmentResolutionError",
    "BackendRejectionError",
    "BaseSpawner",
    "CallContext",
    "CancellationError",
    "ConfigurationError",
    "ClusterBackend",
    "ContextCancelled",
    "DeadlineExceeded",
    "DecodeError",
    "ErrorCategory",
    "FargateSpawner",
    "Spawner",
    "SpawnerError",
    "SpawnerRouter",
    "StubClusterBackend",
    "Task",
    "TaskDefinition",
    "TransientQueryError",
    "World",
    "__version__",
    "decode_world",
    "decode_worlds",
    "encode_worlds",
    "is_cancellation",
]
