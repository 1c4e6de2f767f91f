"""ECS lookups used to explain why a service resource failed to stabilize."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import boto3

from ..errors import ServiceNotFoundError


@dataclass(frozen=True)
class ServiceRollout:
    """Rollout state of the primary deployment of an ECS service."""

    cluster: str
    service: str
    rollout_state: str
    rollout_state_reason: str = ""
    running_count: int = 0
    desired_count: int = 0
    failed_tasks: int = 0
    last_event: str = ""

    def human_string(self) -> str:
        parts = [
            f"rollout {self.rollout_state or 'UNKNOWN'}",
            f"{self.running_count}/{self.desired_count} running",
        ]
        if self.failed_tasks:
            parts.append(f"{self.failed_tasks} failed tasks")
        if self.rollout_state_reason:
            parts.append(self.rollout_state_reason)
        elif self.last_event:
            parts.append(self.last_event)
        return ", ".join(parts)


def parse_service_arn(arn: str) -> tuple[str, str]:
    """Split an ECS service ARN into ``(cluster, service)``.

    Accepts the long format ``arn:aws:ecs:<region>:<account>:service/<cluster>/<service>``.
    """
    resource = arn.split(":", 5)[-1]
    parts = resource.split("/")
    if len(parts) != 3 or parts[0] != "service":
        raise ValueError(f"'{arn}' is not a long-format ECS service ARN")
    return parts[1], parts[2]


class ECS:
    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def for_region(cls, region: str) -> ECS:
        return cls(boto3.client("ecs", region_name=region))

    def service_rollout_status(self, cluster: str, service: str) -> ServiceRollout:
        out = self._client.describe_services(cluster=cluster, services=[service])
        services = out.get("services", [])
        if not services:
            raise ServiceNotFoundError(cluster, service)
        svc = services[0]
        deployments = svc.get("deployments", [])
        primary = next(
            (d for d in deployments if d.get("status") == "PRIMARY"),
            deployments[0] if deployments else {},
        )
        events = svc.get("events", [])
        return ServiceRollout(
            cluster=cluster,
            service=service,
            rollout_state=primary.get("rolloutState", ""),
            rollout_state_reason=primary.get("rolloutStateReason", ""),
            running_count=primary.get("runningCount", svc.get("runningCount", 0)),
            desired_count=primary.get("desiredCount", svc.get("desiredCount", 0)),
            failed_tasks=primary.get("failedTasks", 0),
            last_event=events[0].get("message", "") if events else "",
        )
