"""AWS ECS cluster backend (boto3).

Implements ``ClusterBackend`` on top of the ECS API (RunTask, DescribeTasks,
StopTask, ListTasks) and EC2 DescribeNetworkInterfaces for public IPs.

boto3 clients are blocking; every call runs in a worker thread via
``asyncio.to_thread`` so the event loop (and the caller's CallContext)
stays responsive.

Error mapping:

    .. code-block:: text

        run_task        ClientError / BotoCoreError        → BackendRejectionError
                        empty tasks + failures[0]          → BackendRejectionError
        describe_tasks  ClientError / BotoCoreError        → TransientQueryError
        list_tasks      ClientError / BotoCoreError        → TransientQueryError
        stop_task       ClientError / BotoCoreError        → TransientQueryError
        describe_network_interfaces
                        any failure / no public IP         → AttachmentResolutionError

Example:
    >>> backend = EcsBackend.from_settings(get_settings())
    >>> result = await backend.submit_run("svc:3", "c1", placement, [])
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

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
from spawner.settings import SpawnerSettings

logger = structlog.get_logger(__name__)

LAUNCH_TYPE_FARGATE = "FARGATE"


def _failure_reason(resp: dict[str, Any], op: str) -> str:
    failures = resp.get("failures") or []
    if failures:
        first = failures[0]
        parts = [first.get("reason") or "unknown reason"]
        if first.get("arn"):
            parts.append(f"arn={first['arn']}")
        if first.get("detail"):
            parts.append(first["detail"])
        return f"{op}: {' '.join(parts)}"
    return f"{op}: unable to fulfil request"


class EcsBackend:
    """ClusterBackend backed by AWS ECS (Fargate launch type) and EC2.

    Clients are created lazily from the session on first use.

    Args:
        session: boto3 session; None = default credential chain.
        ecs_client / ec2_client: Pre-built clients (tests, custom config).
        ecs_endpoint_url / ec2_endpoint_url: Endpoint overrides (LocalStack).
    """

    def __init__(
        self,
        session: boto3.session.Session | None = None,
        *,
        ecs_client: Any | None = None,
        ec2_client: Any | None = None,
        ecs_endpoint_url: str | None = None,
        ec2_endpoint_url: str | None = None,
    ) -> None:
        self._session = session
        self._ecs = ecs_client
        self._ec2 = ec2_client
        self._ecs_endpoint_url = ecs_endpoint_url
        self._ec2_endpoint_url = ec2_endpoint_url

    @classmethod
    def from_settings(cls, settings: SpawnerSettings) -> EcsBackend:
        session = boto3.session.Session(
            region_name=settings.aws_region,
            profile_name=settings.aws_profile,
        )
        return cls(
            session,
            ecs_endpoint_url=settings.ecs_endpoint_url,
            ec2_endpoint_url=settings.ec2_endpoint_url,
        )

    @property
    def name(self) -> str:
        return "ecs"

    # --- Lazy clients ---

    @property
    def session(self) -> boto3.session.Session:
        if self._session is None:
            self._session = boto3.session.Session()
        return self._session

    @property
    def ecs(self) -> Any:
        if self._ecs is None:
            kwargs = {"endpoint_url": self._ecs_endpoint_url} if self._ecs_endpoint_url else {}
            self._ecs = self.session.client("ecs", **kwargs)
        return self._ecs

    @property
    def ec2(self) -> Any:
        if self._ec2 is None:
            kwargs = {"endpoint_url": self._ec2_endpoint_url} if self._ec2_endpoint_url else {}
            self._ec2 = self.session.client("ec2", **kwargs)
        return self._ec2

    # --- ClusterBackend ---

    async def submit_run(
        self,
        template: str,
        domain: str,
        placement: NetworkPlacement,
        overrides: list[ContainerOverride],
    ) -> SubmitResult:
        params: dict[str, Any] = {
            "cluster": domain,
            "taskDefinition": template,
            "launchType": LAUNCH_TYPE_FARGATE,
            "networkConfiguration": {
                "awsvpcConfiguration": {
                    "subnets": list(placement.subnets),
                    "securityGroups": list(placement.security_groups),
                    "assignPublicIp": "ENABLED" if placement.assign_public_ip else "DISABLED",
                },
            },
        }
        if overrides:
            params["overrides"] = {
                "containerOverrides": [
                    {"name": o.name, "command": list(o.command)} for o in overrides
                ],
            }
        try:
            resp = await asyncio.to_thread(self.ecs.run_task, **params)
        except (ClientError, BotoCoreError) as exc:
            # ParamValidationError (bad subnets, empty cluster...) is a BotoCoreError
            raise BackendRejectionError(f"run task: {exc}", spawner=self.name, cause=exc) from exc

        tasks = resp.get("tasks") or []
        if not tasks:
            raise BackendRejectionError(_failure_reason(resp, "run task"), spawner=self.name)
        # NOTE: RunTask can start more than one task per call; we ask for one.
        task = tasks[0]
        return SubmitResult(run_id=task["taskArn"], domain_ref=task.get("clusterArn") or domain)

    async def describe(self, domain_ref: str, run_id: str) -> UnitDescription:
        try:
            resp = await asyncio.to_thread(
                self.ecs.describe_tasks, cluster=domain_ref, tasks=[run_id],
            )
        except (ClientError, BotoCoreError) as exc:
            raise TransientQueryError(f"describe task: {exc}", spawner=self.name, cause=exc) from exc

        tasks = resp.get("tasks") or []
        if not tasks:
            raise TransientQueryError(_failure_reason(resp, "describe task"), spawner=self.name)
        return self._to_description(tasks[0], domain_ref)

    async def stop(self, domain_ref: str, run_id: str) -> None:
        try:
            await asyncio.to_thread(self.ecs.stop_task, cluster=domain_ref, task=run_id)
        except (ClientError, BotoCoreError) as exc:
            raise TransientQueryError(f"stop task: {exc}", spawner=self.name, cause=exc) from exc
        logger.info("task_stop_requested", run_id=run_id, cluster=domain_ref)

    async def list_run_ids(
        self, domain: str, page_token: str | None = None,
    ) -> tuple[list[str], str | None]:
        params: dict[str, Any] = {"cluster": domain}
        if page_token:
            params["nextToken"] = page_token
        try:
            resp = await asyncio.to_thread(self.ecs.list_tasks, **params)
        except (ClientError, BotoCoreError) as exc:
            raise TransientQueryError(f"list tasks: {exc}", spawner=self.name, cause=exc) from exc
        return list(resp.get("taskArns") or []), resp.get("nextToken") or None

    async def resolve_address(self, attachment_id: str) -> str:
        try:
            resp = await asyncio.to_thread(
                self.ec2.describe_network_interfaces, NetworkInterfaceIds=[attachment_id],
            )
        except (ClientError, BotoCoreError) as exc:
            raise AttachmentResolutionError(
                f"describe network interface {attachment_id}: {exc}",
                spawner=self.name,
                cause=exc,
            ) from exc

        interfaces = resp.get("NetworkInterfaces") or []
        if not interfaces:
            raise AttachmentResolutionError(
                f"no interface found for {attachment_id}", spawner=self.name,
            )
        public_ip = (interfaces[0].get("Association") or {}).get("PublicIp")
        if not public_ip:
            raise AttachmentResolutionError(
                f"interface {attachment_id} has no public ip", spawner=self.name,
            )
        return public_ip

    # --- Mapping ---

    @staticmethod
    def _to_description(task: dict[str, Any], domain_ref: str) -> UnitDescription:
        attachments = tuple(
            Attachment(
                type=a.get("type", ""),
                id=a.get("id", ""),
                status=a.get("status", ""),
                details={
                    d["name"]: d.get("value", "")
                    for d in a.get("details") or []
                    if "name" in d
                },
            )
            for a in task.get("attachments") or []
        )
        return UnitDescription(
            run_id=task["taskArn"],
            domain_ref=task.get("clusterArn") or domain_ref,
            status=UnitStatus.parse(task.get("lastStatus")),
            attachments=attachments,
        )
