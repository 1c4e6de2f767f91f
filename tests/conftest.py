"""In-memory stand-ins for CloudFormation and ECS used across the test suite."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError

from darth_deploy.aws.cloudformation import (
    ChangeSetDescription,
    Stack,
    StackEvent,
)
from darth_deploy.errors import StackNotFoundError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
STACK_NAME = "app"
STACK_ID = "arn:aws:cloudformation:us-east-1:123456789012:stack/app/1111"
CHILD_NAME = "app-AddonsStack-ABC"
CHILD_ID = "arn:aws:cloudformation:us-east-1:123456789012:stack/app-AddonsStack-ABC/2222"
CHANGE_SET_ID = "arn:aws:cloudformation:us-east-1:123456789012:changeSet/darth-1/3333"


def at(seconds: float) -> datetime:
    return NOW + timedelta(seconds=seconds)


def client_error(code: str, message: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def make_event(
    logical_id: str,
    status: str,
    *,
    seconds: float = 0,
    stack_name: str = STACK_NAME,
    stack_id: str = STACK_ID,
    resource_type: str = "AWS::SQS::Queue",
    physical_id: str = "",
    reason: str = "",
    event_id: str | None = None,
) -> StackEvent:
    return StackEvent(
        event_id=event_id or f"{stack_name}/{logical_id}/{status}/{seconds}",
        stack_id=stack_id,
        stack_name=stack_name,
        logical_resource_id=logical_id,
        resource_type=resource_type,
        resource_status=status,
        timestamp=at(seconds),
        physical_resource_id=physical_id,
        status_reason=reason,
    )


def stack_event(status: str, *, seconds: float = 0, reason: str = "") -> StackEvent:
    """Status event of the root stack itself."""
    return make_event(
        STACK_NAME,
        status,
        seconds=seconds,
        resource_type="AWS::CloudFormation::Stack",
        physical_id=STACK_ID,
        reason=reason,
    )


def make_stack(
    status: str,
    *,
    updated: float | None = None,
    reason: str = "",
    outputs: dict[str, str] | None = None,
) -> Stack:
    return Stack(
        name=STACK_NAME,
        stack_id=STACK_ID,
        status=status,
        status_reason=reason,
        creation_time=NOW - timedelta(days=1),
        last_updated_time=at(updated) if updated is not None else None,
        outputs=outputs or {},
    )


class FakeCloudFormation:
    """Scripted replacement for :class:`darth_deploy.aws.cloudformation.CloudFormation`.

    ``events`` maps a stack name or ARN to its event history, newest first,
    like the API. ``stacks`` is the sequence returned by successive
    ``describe_stack`` calls; the last entry repeats.
    """

    def __init__(self) -> None:
        self.existing_stacks: set[str] = set()
        self.events: dict[str, list[StackEvent]] = {}
        self.event_errors: dict[str, Exception] = {}
        self.stacks: list[Stack] = []
        self.change_set = ChangeSetDescription(
            id=CHANGE_SET_ID,
            stack_id=STACK_ID,
            status="CREATE_COMPLETE",
            execution_status="AVAILABLE",
            creation_time=NOW,
        )
        self.create_error: Exception | None = None
        self.waiter_error: Exception | None = None
        self.describe_change_set_error: Exception | None = None
        self.execute_error: Exception | None = None
        self.delete_change_set_error: Exception | None = None
        # Prepended to the stack's events once delete_stack is called.
        self.delete_events: list[StackEvent] = []
        self.submitted: list[dict] = []
        self.calls: Counter[str] = Counter()

    def create_change_set(self, **kwargs) -> tuple[str, str]:
        self.calls["create_change_set"] += 1
        self.submitted.append(kwargs)
        if kwargs["create"] and kwargs["stack_name"] in self.existing_stacks:
            raise client_error(
                "AlreadyExistsException",
                f"Stack [{kwargs['stack_name']}] already exists",
                "CreateChangeSet",
            )
        if self.create_error is not None:
            raise self.create_error
        return CHANGE_SET_ID, STACK_ID

    def wait_until_change_set_created(self, change_set_id, stack_id, **kwargs) -> None:
        self.calls["wait_until_change_set_created"] += 1
        if self.waiter_error is not None:
            raise self.waiter_error

    def describe_change_set(self, change_set_id, stack_id) -> ChangeSetDescription:
        self.calls["describe_change_set"] += 1
        if self.describe_change_set_error is not None:
            raise self.describe_change_set_error
        return self.change_set

    def execute_change_set(self, change_set_id, stack_id) -> None:
        self.calls["execute_change_set"] += 1
        if self.execute_error is not None:
            raise self.execute_error

    def delete_change_set(self, change_set_id, stack_id) -> None:
        self.calls["delete_change_set"] += 1
        if self.delete_change_set_error is not None:
            raise self.delete_change_set_error

    def describe_stack_events(self, stack_name: str) -> list[StackEvent]:
        self.calls["describe_stack_events"] += 1
        if stack_name in self.event_errors:
            raise self.event_errors[stack_name]
        return list(self.events.get(stack_name, []))

    def describe_stack(self, stack_name: str) -> Stack:
        self.calls["describe_stack"] += 1
        if not self.stacks:
            raise StackNotFoundError(stack_name)
        if len(self.stacks) > 1:
            return self.stacks.pop(0)
        return self.stacks[0]

    def delete_stack(self, stack_name: str) -> None:
        self.calls["delete_stack"] += 1
        self.events[stack_name] = self.delete_events + self.events.get(stack_name, [])


class FakePaginator:
    def __init__(self, pages: list[dict]) -> None:
        self._pages = pages
        self.kwargs: dict | None = None

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return iter(self._pages)


class FakeWaiter:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.kwargs: dict | None = None

    def wait(self, **kwargs) -> None:
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error


class FakeCloudFormationClient:
    """Just enough of a boto3 ``cloudformation`` client for the adapter tests."""

    def __init__(self) -> None:
        self.pages: list[dict] = []
        self.paginator: FakePaginator | None = None
        self.waiter = FakeWaiter()
        self.describe_stacks_response: dict | Exception = {"Stacks": []}
        self.requests: list[tuple[str, dict]] = []

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "describe_stack_events"
        self.paginator = FakePaginator(self.pages)
        return self.paginator

    def get_waiter(self, name: str) -> FakeWaiter:
        assert name == "change_set_create_complete"
        return self.waiter

    def create_change_set(self, **kwargs) -> dict:
        self.requests.append(("create_change_set", kwargs))
        return {"Id": CHANGE_SET_ID, "StackId": STACK_ID}

    def describe_stacks(self, **kwargs) -> dict:
        self.requests.append(("describe_stacks", kwargs))
        if isinstance(self.describe_stacks_response, Exception):
            raise self.describe_stacks_response
        return self.describe_stacks_response


class FakeECSClient:
    def __init__(self, response: dict) -> None:
        self.response = response
        self.requests: list[dict] = []

    def describe_services(self, **kwargs) -> dict:
        self.requests.append(kwargs)
        return self.response


@pytest.fixture
def cfn() -> FakeCloudFormation:
    return FakeCloudFormation()


@pytest.fixture
def cfn_client() -> FakeCloudFormationClient:
    return FakeCloudFormationClient()
