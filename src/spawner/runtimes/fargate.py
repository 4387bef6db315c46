"""Fargate spawner: runs worlds as ECS tasks on Fargate.

Spawning is a saga over a ``ClusterBackend``:

    .. code-block:: text

        spawn(definition)
          ├── submit_run()                 rejection → raise, nothing to undo
          │     ctx ends mid-submit → await it, stop what it created, re-raise
          ├── ── compensating region ───────────────────────────────────────
          │   ├── poll: sleep(interval) → describe() until RUNNING
          │   │     describe fails   → TransientQueryError
          │   │     ctx done         → ContextCancelled / DeadlineExceeded
          │   ├── eni_from_attachments() → AttachmentResolutionError
          │   ├── resolve_address()      → AttachmentResolutionError
          │   └── on ANY error: stop(run) on a detached 5s context, re-raise
          └── committed → World(details=Task)

    .. mermaid::

        sequenceDiagram
            participant C as Caller
            participant F as FargateSpawner
            participant B as ClusterBackend
            C->>F: spawn(payload, ctx)
            F->>B: submit_run
            B-->>F: run_id
            loop every poll interval
                F->>B: describe(run_id)
                B-->>F: status
            end
            F->>B: resolve_address(eni)
            alt failure after submit
                F->>B: stop(run_id) [detached ctx]
                F-->>C: original error
            else success
                F-->>C: World
            end

The ``Task`` stored in ``World.details`` holds everything needed to stop the
world later. Only this spawner reads it back.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from spawner.context import CallContext
from spawner.errors import (
    AttachmentResolutionError,
    CancellationError,
    DecodeError,
    SpawnerError,
    TransientQueryError,
)
from spawner.runtimes._base import BaseSpawner
from spawner.runtimes._types import (
    Attachment,
    ClusterBackend,
    SubmitResult,
    TaskDefinition,
    UnitDescription,
    UnitStatus,
)
from spawner.world import World

if TYPE_CHECKING:
    from spawner.settings import SpawnerSettings

logger = structlog.get_logger(__name__)

FARGATE_SPAWNER_NAME = "ecs.fargate"
FARGATE_SPAWNER_VERSION = "v1"

DEFAULT_POLL_INTERVAL_SECONDS = 0.5
DEFAULT_COMPENSATION_TIMEOUT_SECONDS = 5.0
DEFAULT_SERVICE_PORT = "8080"

ENI_ATTACHMENT_TYPE = "ElasticNetworkInterface"
ENI_DETAIL_KEY = "networkInterfaceId"


# ---------------------------------------------------------------------------
# World details
# ---------------------------------------------------------------------------

class Task(BaseModel):
    """Coordinates of a running Fargate task.

    Spawner callers have to store this (inside ``World.details``) if they
    want to be able to kill the world later.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    arn: str
    cluster_arn: str
    addr: str | None = None

    def new_world(self, spawner: str, galaxy: str) -> World:
        return World(
            id=self.arn,
            galaxy=galaxy,
            addr=self.addr or "",
            spawner=spawner,
            details=self.model_dump(),
        )

    @classmethod
    def from_world(cls, world: World, spawner: str | None = None) -> Task:
        """Recover the task coordinates from a World produced by *spawner*.

        Raises:
            DecodeError: The world came from another spawner or its details
                do not have the Task shape.
        """
        if spawner and world.spawner and world.spawner != spawner:
            raise DecodeError(
                f"world {world.id!r} was spawned by {world.spawner!r}, not {spawner!r}",
                spawner=spawner,
            )
        if world.details is None:
            raise DecodeError(f"world {world.id!r} has no details", spawner=spawner)
        try:
            return cls.model_validate(world.details)
        except PydanticValidationError as exc:
            raise DecodeError(
                f"unmarshal world details: {exc.error_count()} invalid field(s)",
                spawner=spawner,
                cause=exc,
            ) from exc


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def join_host_port(host: str, port: str) -> str:
    """``host:port``, with IPv6 hosts in brackets."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def eni_from_attachments(attachments: tuple[Attachment, ...] | list[Attachment]) -> str:
    """Network interface id of the first ENI attachment.

    Raises:
        AttachmentResolutionError: No ENI attachment, or no interface id on it.
    """
    if not attachments:
        raise AttachmentResolutionError("missing task attachments")
    eni_attachment = next((a for a in attachments if a.type == ENI_ATTACHMENT_TYPE), None)
    if eni_attachment is None:
        raise AttachmentResolutionError(f"missing {ENI_ATTACHMENT_TYPE} attachment")
    eni = eni_attachment.details.get(ENI_DETAIL_KEY, "")
    if not eni:
        raise AttachmentResolutionError(
            f"missing interface id within {ENI_ATTACHMENT_TYPE} attachment"
        )
    return eni


# ---------------------------------------------------------------------------
# FargateSpawner
# ---------------------------------------------------------------------------

class FargateSpawner(BaseSpawner):
    """Spawns worlds as Fargate tasks through a ``ClusterBackend``.

    Args:
        backend: The cluster backend to drive (``EcsBackend`` in production,
            ``StubClusterBackend`` in tests).
        poll_interval: Seconds between status polls while waiting for RUNNING.
        compensation_timeout: Deadline for the stop issued when a spawn
            fails after submission.
        service_port: Port appended to the resolved host when the request
            does not name one.

    Example:
        >>> spawner = FargateSpawner(EcsBackend.from_settings(settings))
        >>> world = await spawner.spawn(payload, CallContext(timeout=120))
        >>> await spawner.kill(world)
    """

    def __init__(
        self,
        backend: ClusterBackend,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        compensation_timeout: float = DEFAULT_COMPENSATION_TIMEOUT_SECONDS,
        service_port: str = DEFAULT_SERVICE_PORT,
    ) -> None:
        self.backend = backend
        self.poll_interval = poll_interval
        self.compensation_timeout = compensation_timeout
        self.service_port = service_port

    @classmethod
    def from_settings(cls, backend: ClusterBackend, settings: SpawnerSettings) -> FargateSpawner:
        return cls(
            backend,
            poll_interval=settings.poll_interval_seconds,
            compensation_timeout=settings.compensation_timeout_seconds,
            service_port=settings.service_port,
        )

    @property
    def name(self) -> str:
        return f"{FARGATE_SPAWNER_NAME}-{FARGATE_SPAWNER_VERSION}"

    # ------------------------------------------------------------------
    # Spawn
    # ------------------------------------------------------------------

    async def _do_spawn(self, definition: TaskDefinition, ctx: CallContext) -> World:
        ctx.raise_if_done()
        # A sent submit cannot be recalled: it is shielded from ctx and, when
        # ctx ends first, awaited and stopped before the cancellation surfaces.
        submit = asyncio.ensure_future(
            self.backend.submit_run(
                definition.name,
                definition.cluster,
                definition.placement,
                list(definition.overrides),
            )
        )
        try:
            submitted = await ctx.run(asyncio.shield(submit))
        except (CancellationError, asyncio.CancelledError):
            await self._settle_submit(ctx, submit, definition.cluster)
            raise
        domain_ref = submitted.domain_ref or definition.cluster
        log = logger.bind(run_id=submitted.run_id, cluster=domain_ref)
        log.info("task_submitted")

        # From here on every failure must stop the task before surfacing.
        committed = False
        try:
            unit = await self._wait_running(ctx, domain_ref, submitted.run_id)
            eni = eni_from_attachments(unit.attachments)
            host = await self._resolve(ctx, eni)
            if not host:
                raise AttachmentResolutionError(f"no public address for interface {eni}")

            addr = join_host_port(host, definition.service or self.service_port)
            task = Task(arn=submitted.run_id, cluster_arn=domain_ref, addr=addr)
            world = task.new_world(self.name, definition.cluster)
            committed = True
            return world
        finally:
            if not committed:
                await self._compensate(ctx, domain_ref, submitted.run_id)

    async def _settle_submit(
        self, ctx: CallContext, submit: asyncio.Future[SubmitResult], cluster: str,
    ) -> None:
        """Wait out a submit abandoned by the caller and stop what it created."""
        try:
            submitted = await asyncio.shield(submit)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.info("abandoned_submit_failed", cluster=cluster, error=str(exc))
            return
        await self._compensate(ctx, submitted.domain_ref or cluster, submitted.run_id)

    async def _wait_running(self, ctx: CallContext, domain_ref: str, run_id: str) -> UnitDescription:
        # Bounded only by ctx: we're waiting for a pending task to become
        # running, not resuming from a lost connection.
        attempt = 0
        while True:
            await ctx.sleep(self.poll_interval)
            attempt += 1
            try:
                unit = await ctx.run(self.backend.describe(domain_ref, run_id))
            except SpawnerError:
                raise
            except Exception as exc:
                raise TransientQueryError(f"describe task: {exc}", spawner=self.name, cause=exc) from exc
            if unit.status is UnitStatus.RUNNING:
                logger.debug("task_running", run_id=run_id, attempts=attempt)
                return unit
            logger.debug("task_not_running", run_id=run_id, status=unit.status.value, attempt=attempt)

    async def _resolve(self, ctx: CallContext, eni: str) -> str:
        try:
            return await ctx.run(self.backend.resolve_address(eni))
        except SpawnerError:
            raise
        except Exception as exc:
            raise AttachmentResolutionError(
                f"describe network interface {eni}: {exc}", spawner=self.name, cause=exc,
            ) from exc

    async def _compensate(self, ctx: CallContext, domain_ref: str, run_id: str) -> None:
        """Stop a half-started task on a context detached from the caller's."""
        cleanup = ctx.detached(self.compensation_timeout)
        log = logger.bind(run_id=run_id, cluster=domain_ref)
        log.warning("compensating_stop")
        try:
            await cleanup.run(self.backend.stop(domain_ref, run_id))
        except asyncio.CancelledError:
            log.warning("compensating_stop_interrupted")
            raise
        except Exception as exc:
            # Must not mask the error that triggered compensation
            log.warning("compensating_stop_failed", error=str(exc), error_type=type(exc).__name__)

    # ------------------------------------------------------------------
    # Kill
    # ------------------------------------------------------------------

    async def _do_kill(self, world: World, ctx: CallContext) -> None:
        task = Task.from_world(world, spawner=self.name)
        await ctx.run(self.backend.stop(task.cluster_arn, task.arn))

    # ------------------------------------------------------------------
    # Ps
    # ------------------------------------------------------------------

    async def _do_ps(self, galaxy: str, ctx: CallContext) -> list[World]:
        run_ids: list[str] = []
        token: str | None = None
        while True:
            page, token = await ctx.run(self.backend.list_run_ids(galaxy, token))
            run_ids.extend(page)
            if not token:
                break

        worlds: list[World] = []
        for run_id in run_ids:
            unit = await ctx.run(self.backend.describe(galaxy, run_id))
            if unit.status is not UnitStatus.RUNNING:
                continue
            addr = await self._best_effort_addr(ctx, unit)
            task = Task(arn=unit.run_id, cluster_arn=unit.domain_ref or galaxy, addr=addr)
            worlds.append(task.new_world(self.name, galaxy))
        return worlds

    async def _best_effort_addr(self, ctx: CallContext, unit: UnitDescription) -> str | None:
        # ps is observational: one unresolvable unit must not hide the rest
        try:
            eni = eni_from_attachments(unit.attachments)
            host = await self._resolve(ctx, eni)
        except CancellationError:
            raise
        except SpawnerError as exc:
            logger.info("ps_address_unresolved", run_id=unit.run_id, error=str(exc))
            return None
        if not host:
            return None
        return join_host_port(host, self.service_port)
