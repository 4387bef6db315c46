"""Spawner and cluster backend protocols plus the types they exchange.

This module defines the canonical abstractions for world lifecycles:

- Spawner: Protocol callers use (spawn / kill / ps / name)
- ClusterBackend: Narrow protocol over a remote cluster execution service
- TaskDefinition / ContainerOverride: The spawn request
- NetworkPlacement: Subnets and security groups for a submission
- UnitStatus: Lifecycle state reported by the backend
- Attachment / UnitDescription: What a status query returns
- SubmitResult: What a successful submission returns

Design Notes:
    Spawner is the caller-facing contract; it speaks Worlds and opaque
    payloads. ClusterBackend is what a spawner drives; it speaks run ids
    and domain references. Orchestration code is written against the
    ClusterBackend protocol only, so a scripted test double can stand in
    for the real service.

Architecture:

    .. code-block:: text

        caller ──► Spawner (protocol)
                      │  FargateSpawner
                      ▼
                   ClusterBackend (protocol)
                      ├── EcsBackend          (boto3: ECS + EC2)
                      └── StubClusterBackend  (in-memory, scripted)

    .. mermaid::

        graph LR
            TD[TaskDefinition] -->|spawn| S[Spawner]
            S -->|submit_run| B[ClusterBackend]
            B -->|SubmitResult| S
            S -->|describe| B
            B -->|UnitDescription| S
            S -->|resolve_address| B
            S -->|returns| W[World]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from spawner.errors import DecodeError

if TYPE_CHECKING:
    from spawner.context import CallContext
    from spawner.world import World


# ---------------------------------------------------------------------------
# Spawn request
# ---------------------------------------------------------------------------

class ContainerOverride(BaseModel):
    """Per-container command override.

    ``name`` is the container name inside the task definition; check the
    task definition on the AWS console to find it. ``command`` replaces
    how the container is started (Docker CMD).
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    command: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("container override needs a container name")
        return value


class TaskDefinition(BaseModel):
    """The spawn request.

    Example payload::

        {"name": "svc:3", "cluster": "c1",
         "subnets": ["sn-1"], "security_groups": ["sg-1"],
         "overrides": [{"name": "worker", "command": ["ffmpeg", "-i", "in"]}]}
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Task definition family[:revision] to run")
    cluster: str = Field(..., description="Cluster the task runs in (the galaxy)")
    subnets: list[str] = Field(default_factory=list)
    security_groups: list[str] = Field(default_factory=list)
    overrides: list[ContainerOverride] = Field(default_factory=list)
    service: str | None = Field(
        default=None,
        description="Port the world serves on; defaults to the configured service port",
    )

    @field_validator("name", "cluster")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("subnets", "security_groups", "overrides", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        return [] if value is None else value

    @property
    def placement(self) -> NetworkPlacement:
        return NetworkPlacement(
            subnets=tuple(self.subnets),
            security_groups=tuple(self.security_groups),
        )

    @classmethod
    def from_payload(cls, data: bytes | str) -> TaskDefinition:
        """Decode a request payload.

        Raises:
            DecodeError: Malformed JSON or missing/invalid fields.
        """
        try:
            return cls.model_validate_json(data)
        except PydanticValidationError as exc:
            errors = exc.errors()
            detail = str(exc)
            if errors:
                loc = ".".join(str(p) for p in errors[0].get("loc", ())) or "payload"
                detail = f"{loc}: {errors[0].get('msg', 'invalid')}"
            raise DecodeError(f"decode task definition: {detail}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Backend-side types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NetworkPlacement:
    """Where a unit is attached on the network."""

    subnets: tuple[str, ...] = ()
    security_groups: tuple[str, ...] = ()
    assign_public_ip: bool = True


class UnitStatus(str, Enum):
    """Lifecycle state of a unit, as reported by the backend.

    Values follow the ECS task lifecycle. Anything the backend reports
    that is not listed maps to ``UNKNOWN``.
    """

    PROVISIONING = "PROVISIONING"
    PENDING = "PENDING"
    ACTIVATING = "ACTIVATING"
    RUNNING = "RUNNING"
    DEACTIVATING = "DEACTIVATING"
    STOPPING = "STOPPING"
    DEPROVISIONING = "DEPROVISIONING"
    STOPPED = "STOPPED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> UnitStatus:
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Attachment:
    """Backend metadata linking a unit to a resource (e.g. a network interface)."""

    type: str
    id: str = ""
    status: str = ""
    details: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class UnitDescription:
    """Observed state of one unit."""

    run_id: str
    domain_ref: str
    status: UnitStatus
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class SubmitResult:
    """Identifiers of a freshly submitted unit (not necessarily running yet)."""

    run_id: str
    domain_ref: str


# ---------------------------------------------------------------------------
# ClusterBackend: what spawners drive
# ---------------------------------------------------------------------------

@runtime_checkable
class ClusterBackend(Protocol):
    """Protocol for a remote cluster execution service.

    Lifecycle:
        submit_run → describe (polling) → resolve_address → stop

    Errors:
        submit_run raises BackendRejectionError when the request is refused.
        describe / list_run_ids / stop raise TransientQueryError.
        resolve_address raises AttachmentResolutionError.
    """

    @property
    def name(self) -> str:
        """Backend identifier (e.g. 'ecs')."""
        ...

    async def submit_run(
        self,
        template: str,
        domain: str,
        placement: NetworkPlacement,
        overrides: list[ContainerOverride],
    ) -> SubmitResult:
        """Start one unit of *template* in *domain*."""
        ...

    async def describe(self, domain_ref: str, run_id: str) -> UnitDescription:
        """Current status and attachments of a unit."""
        ...

    async def stop(self, domain_ref: str, run_id: str) -> None:
        """Stop a unit. Idempotency is backend-defined."""
        ...

    async def list_run_ids(
        self, domain: str, page_token: str | None = None,
    ) -> tuple[list[str], str | None]:
        """One page of run ids in *domain* plus the next page token (None = last)."""
        ...

    async def resolve_address(self, attachment_id: str) -> str:
        """Public address of a network attachment."""
        ...


# ---------------------------------------------------------------------------
# Spawner: what callers use
# ---------------------------------------------------------------------------

@runtime_checkable
class Spawner(Protocol):
    """Protocol for world spawners, one variant per backend.

    .. code-block:: text

        Spawner Protocol
        ┌─────────────────────────────────────────────────────────┐
        │  name                      Stable id incl. version tag  │
        │  spawn(request, ctx)       Start a world, wait for addr │
        │  kill(world, ctx)          Stop a previously spawned    │
        │  ps(galaxy, ctx)           List running worlds          │
        └─────────────────────────────────────────────────────────┘
    """

    @property
    def name(self) -> str:
        ...

    async def spawn(self, request: bytes | str, ctx: CallContext | None = None) -> World:
        """Start a world. On return it accepts connections on ``World.addr``."""
        ...

    async def kill(self, world: World, ctx: CallContext | None = None) -> None:
        """Stop and purge a previously spawned world."""
        ...

    async def ps(self, galaxy: str, ctx: CallContext | None = None) -> list[World]:
        """List the currently running worlds in *galaxy*."""
        ...
