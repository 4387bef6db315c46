"""In-memory cluster backend for tests and dry runs.

``StubClusterBackend`` implements ``ClusterBackend`` without any network
access. Each submitted unit walks a scripted status sequence, one step per
``describe`` call, and every call is recorded so tests can assert exactly
what the orchestrator did.

.. code-block:: text

    StubClusterBackend behavior:

    submit_run()  → run id from ``run_ids`` (in order) or "stub-<hex>"
    describe()    → next status in ``statuses`` (last one repeats)
                    STOPPED once the unit was stopped
    resolve()     → ``address`` for the unit's ENI

    Inject failures:
      backend.fail_submit  = True   → submit_run() raises BackendRejectionError
      backend.fail_describe = True  → describe() raises TransientQueryError
      backend.fail_stop    = True   → stop() raises TransientQueryError
      backend.fail_resolve = True   → resolve_address() raises AttachmentResolutionError

    Track usage:
      backend.submitted       → list of submit_run kwargs
      backend.describe_calls  → list of (domain_ref, run_id)
      backend.stopped         → list of (domain_ref, run_id)

Example:
    >>> backend = StubClusterBackend(statuses=["PENDING", "PENDING", "RUNNING"],
    ...                              run_ids=["run-abc"], address="203.0.113.7")
    >>> spawner = FargateSpawner(backend, poll_interval=0.01)
    >>> world = await spawner.spawn(payload)
    >>> world.addr
    '203.0.113.7:8080'
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from spawner.errors import (
    AttachmentResolutionError,
    BackendRejectionError,
    TransientQueryError,
)
from spawner.runtimes._types import (
    Attachment,
    ContainerOverride,
    NetworkPlacement,
    SubmitResult,
    UnitDescription,
    UnitStatus,
)

_ENI_TYPE = "ElasticNetworkInterface"


def eni_attachment(eni: str) -> Attachment:
    """An ENI attachment the way ECS reports it for awsvpc tasks."""
    return Attachment(
        type=_ENI_TYPE,
        id=f"attachment-{eni}",
        status="ATTACHED",
        details={"subnetId": "subnet-stub", "networkInterfaceId": eni},
    )


@dataclass
class _StubUnit:
    """Internal state for a stubbed unit."""

    run_id: str
    domain: str
    statuses: list[UnitStatus]
    attachments: tuple[Attachment, ...]
    index: int = 0
    stopped: bool = False

    def next_status(self) -> UnitStatus:
        if self.stopped:
            return UnitStatus.STOPPED
        status = self.statuses[min(self.index, len(self.statuses) - 1)]
        self.index += 1
        return status


class StubClusterBackend:
    """Scripted, call-recording ``ClusterBackend``.

    Args:
        statuses: Status sequence every new unit walks through.
        run_ids: Run ids handed out by successive submissions.
        address: Public address every ENI resolves to (None = unresolvable).
        attachments: Attachments reported for new units. Default is one
            ENI attachment per unit.
        page_size: Ids per ``list_run_ids`` page.
    """

    def __init__(
        self,
        *,
        statuses: list[str | UnitStatus] | None = None,
        run_ids: list[str] | None = None,
        address: str | None = "203.0.113.7",
        attachments: list[Attachment] | None = None,
        page_size: int = 100,
    ) -> None:
        self.statuses = [UnitStatus.parse(s) for s in (statuses or ["PENDING", "RUNNING"])]
        self._run_ids = list(run_ids or [])
        self.address = address
        self.attachments = tuple(attachments) if attachments is not None else None
        self.page_size = page_size

        self.units: dict[str, _StubUnit] = {}
        self.addresses: dict[str, str | None] = {}

        self.submitted: list[dict[str, Any]] = []
        self.describe_calls: list[tuple[str, str]] = []
        self.stopped: list[tuple[str, str]] = []
        self.list_calls: list[tuple[str, str | None]] = []
        self.resolve_calls: list[str] = []

        # Inject failures
        self.fail_submit: bool = False
        self.fail_describe: bool = False
        self.fail_stop: bool = False
        self.fail_resolve: bool = False

    @property
    def name(self) -> str:
        return "stub"

    def add_unit(
        self,
        run_id: str,
        domain: str,
        *,
        status: str | UnitStatus = UnitStatus.RUNNING,
        address: str | None = "203.0.113.7",
        attachments: list[Attachment] | None = None,
    ) -> None:
        """Register a unit that exists without going through ``submit_run``."""
        eni = f"eni-{run_id}"
        self.units[run_id] = _StubUnit(
            run_id=run_id,
            domain=domain,
            statuses=[UnitStatus.parse(status)],
            attachments=tuple(attachments) if attachments is not None else (eni_attachment(eni),),
        )
        self.addresses[eni] = address

    # --- ClusterBackend ---

    async def submit_run(
        self,
        template: str,
        domain: str,
        placement: NetworkPlacement,
        overrides: list[ContainerOverride],
    ) -> SubmitResult:
        if self.fail_submit:
            raise BackendRejectionError("Stub: submit failure injected", spawner=self.name)
        self.submitted.append({
            "template": template,
            "domain": domain,
            "placement": placement,
            "overrides": list(overrides),
        })
        run_id = self._run_ids.pop(0) if self._run_ids else f"stub-{uuid.uuid4().hex[:12]}"
        eni = f"eni-{run_id}"
        self.units[run_id] = _StubUnit(
            run_id=run_id,
            domain=domain,
            statuses=list(self.statuses),
            attachments=self.attachments if self.attachments is not None else (eni_attachment(eni),),
        )
        self.addresses[eni] = self.address
        return SubmitResult(run_id=run_id, domain_ref=domain)

    async def describe(self, domain_ref: str, run_id: str) -> UnitDescription:
        self.describe_calls.append((domain_ref, run_id))
        if self.fail_describe:
            raise TransientQueryError("Stub: describe failure injected", spawner=self.name)
        unit = self.units.get(run_id)
        if unit is None or unit.domain != domain_ref:
            raise TransientQueryError(f"describe task: MISSING arn={run_id}", spawner=self.name)
        return UnitDescription(
            run_id=run_id,
            domain_ref=unit.domain,
            status=unit.next_status(),
            attachments=unit.attachments,
        )

    async def stop(self, domain_ref: str, run_id: str) -> None:
        self.stopped.append((domain_ref, run_id))
        if self.fail_stop:
            raise TransientQueryError("Stub: stop failure injected", spawner=self.name)
        unit = self.units.get(run_id)
        if unit is not None:
            unit.stopped = True

    async def list_run_ids(
        self, domain: str, page_token: str | None = None,
    ) -> tuple[list[str], str | None]:
        self.list_calls.append((domain, page_token))
        ids = [u.run_id for u in self.units.values() if u.domain == domain]
        start = int(page_token) if page_token else 0
        end = start + self.page_size
        next_token = str(end) if end < len(ids) else None
        return ids[start:end], next_token

    async def resolve_address(self, attachment_id: str) -> str:
        self.resolve_calls.append(attachment_id)
        if self.fail_resolve:
            raise AttachmentResolutionError("Stub: resolve failure injected", spawner=self.name)
        address = self.addresses.get(attachment_id)
        if not address:
            raise AttachmentResolutionError(
                f"interface {attachment_id} has no public ip", spawner=self.name,
            )
        return address

