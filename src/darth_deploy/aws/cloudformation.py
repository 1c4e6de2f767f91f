"""Thin wrapper around the boto3 CloudFormation client.

Only the calls the deployer needs are exposed, and every response is
converted into a small frozen dataclass so the rest of the package never
handles raw API dictionaries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import ClientError

from ..errors import StackNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = (
    "CAPABILITY_IAM",
    "CAPABILITY_NAMED_IAM",
    "CAPABILITY_AUTO_EXPAND",
)


@dataclass(frozen=True)
class StackEvent:
    """One resource status transition within one stack."""

    event_id: str
    stack_id: str
    stack_name: str
    logical_resource_id: str
    resource_type: str
    resource_status: str
    timestamp: datetime
    physical_resource_id: str = ""
    status_reason: str = ""

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> StackEvent:
        return cls(
            event_id=raw["EventId"],
            stack_id=raw.get("StackId", ""),
            stack_name=raw.get("StackName", ""),
            logical_resource_id=raw.get("LogicalResourceId", ""),
            resource_type=raw.get("ResourceType", ""),
            resource_status=raw.get("ResourceStatus", ""),
            timestamp=raw["Timestamp"],
            physical_resource_id=raw.get("PhysicalResourceId", ""),
            status_reason=raw.get("ResourceStatusReason", ""),
        )

    @property
    def is_stack_status(self) -> bool:
        """Whether the event describes the stack itself rather than a resource."""
        return bool(self.physical_resource_id) and (
            self.physical_resource_id == self.stack_id
        )


@dataclass(frozen=True)
class Change:
    """A proposed resource change inside a change set."""

    logical_id: str
    resource_type: str
    action: str
    replacement: str = ""


@dataclass(frozen=True)
class ChangeSetDescription:
    id: str
    stack_id: str
    status: str
    execution_status: str
    status_reason: str = ""
    creation_time: datetime | None = None
    changes: tuple[Change, ...] = ()


@dataclass(frozen=True)
class Stack:
    name: str
    stack_id: str
    status: str
    status_reason: str = ""
    creation_time: datetime | None = None
    last_updated_time: datetime | None = None
    outputs: dict[str, str] = field(default_factory=dict)
    parameters: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Stack:
        return cls(
            name=raw["StackName"],
            stack_id=raw.get("StackId", ""),
            status=raw["StackStatus"],
            status_reason=raw.get("StackStatusReason", ""),
            creation_time=raw.get("CreationTime"),
            last_updated_time=raw.get("LastUpdatedTime"),
            outputs={
                o["OutputKey"]: o.get("OutputValue", "")
                for o in raw.get("Outputs", [])
            },
            parameters={
                p["ParameterKey"]: p.get("ParameterValue", "")
                for p in raw.get("Parameters", [])
            },
            tags={t["Key"]: t["Value"] for t in raw.get("Tags", [])},
        )


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def error_message(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Message", "")


def _is_missing_stack(exc: ClientError) -> bool:
    return error_code(exc) == "ValidationError" and "does not exist" in error_message(
        exc
    )


class CloudFormation:
    """CloudFormation calls used by the deployer."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def for_region(cls, region: str) -> CloudFormation:
        return cls(boto3.client("cloudformation", region_name=region))

    def create_change_set(
        self,
        *,
        stack_name: str,
        change_set_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        create: bool,
        description: str | None = None,
        capabilities: tuple[str, ...] = DEFAULT_CAPABILITIES,
    ) -> tuple[str, str]:
        """Create a change set and return its ``(id, stack_id)``."""
        kwargs: dict[str, Any] = {
            "StackName": stack_name,
            "ChangeSetName": change_set_name,
            "TemplateBody": template_body,
            "Parameters": [
                {"ParameterKey": k, "ParameterValue": v} for k, v in parameters.items()
            ],
            "Tags": [{"Key": k, "Value": v} for k, v in tags.items()],
            "Capabilities": list(capabilities),
            "ChangeSetType": "CREATE" if create else "UPDATE",
        }
        if description:
            kwargs["Description"] = description
        out = self._client.create_change_set(**kwargs)
        return out["Id"], out["StackId"]

    def wait_until_change_set_created(
        self,
        change_set_id: str,
        stack_id: str,
        *,
        delay: int = 5,
        max_attempts: int = 120,
    ) -> None:
        """Block until the change set leaves ``CREATE_PENDING``/``CREATE_IN_PROGRESS``.

        Raises ``botocore.exceptions.WaiterError`` when the change set fails,
        which includes change sets that contain no changes.
        """
        waiter = self._client.get_waiter("change_set_create_complete")
        waiter.wait(
            ChangeSetName=change_set_id,
            StackName=stack_id,
            WaiterConfig={"Delay": delay, "MaxAttempts": max_attempts},
        )

    def describe_change_set(
        self, change_set_id: str, stack_id: str
    ) -> ChangeSetDescription:
        out = self._client.describe_change_set(
            ChangeSetName=change_set_id, StackName=stack_id
        )
        changes = []
        for raw in out.get("Changes", []):
            rc = raw.get("ResourceChange", {})
            changes.append(
                Change(
                    logical_id=rc.get("LogicalResourceId", ""),
                    resource_type=rc.get("ResourceType", ""),
                    action=rc.get("Action", ""),
                    replacement=rc.get("Replacement", ""),
                )
            )
        return ChangeSetDescription(
            id=out.get("ChangeSetId", change_set_id),
            stack_id=out.get("StackId", stack_id),
            status=out.get("Status", ""),
            execution_status=out.get("ExecutionStatus", ""),
            status_reason=out.get("StatusReason", ""),
            creation_time=out.get("CreationTime"),
            changes=tuple(changes),
        )

    def execute_change_set(self, change_set_id: str, stack_id: str) -> None:
        self._client.execute_change_set(ChangeSetName=change_set_id, StackName=stack_id)

    def delete_change_set(self, change_set_id: str, stack_id: str) -> None:
        self._client.delete_change_set(ChangeSetName=change_set_id, StackName=stack_id)

    def describe_stack_events(self, stack_name: str) -> list[StackEvent]:
        """Return the full event history of a stack, newest first."""
        paginator = self._client.get_paginator("describe_stack_events")
        events: list[StackEvent] = []
        for page in paginator.paginate(StackName=stack_name):
            events.extend(StackEvent.from_api(raw) for raw in page["StackEvents"])
        logger.debug("Read %d events for stack %s", len(events), stack_name)
        return events

    def describe_stack(self, stack_name: str) -> Stack:
        try:
            out = self._client.describe_stacks(StackName=stack_name)
        except ClientError as exc:
            if _is_missing_stack(exc):
                raise StackNotFoundError(stack_name) from exc
            raise
        if not out.get("Stacks"):
            raise StackNotFoundError(stack_name)
        return Stack.from_api(out["Stacks"][0])

    def delete_stack(self, stack_name: str) -> None:
        self._client.delete_stack(StackName=stack_name)
