"""Exceptions raised while deploying stacks."""

from __future__ import annotations


class DeployError(Exception):
    """Base class for every deployment failure surfaced to the CLI."""


class StackAlreadyExistsError(DeployError):
    """A create change set was submitted against a stack that already exists."""

    def __init__(self, stack_name: str) -> None:
        super().__init__(f"stack {stack_name} already exists")
        self.stack_name = stack_name


class StackNotFoundError(DeployError):
    def __init__(self, stack_name: str) -> None:
        super().__init__(f"stack {stack_name} not found")
        self.stack_name = stack_name


class ChangeSetNotExecutableError(DeployError):
    """The change set finished computing but cannot be executed."""

    def __init__(
        self,
        change_set_id: str,
        stack_id: str,
        execution_status: str,
        reason: str,
    ) -> None:
        super().__init__(
            f"cannot execute change set {change_set_id} for stack {stack_id} "
            f"because status is {execution_status} with reason {reason!r}"
        )
        self.change_set_id = change_set_id
        self.stack_id = stack_id
        self.execution_status = execution_status
        self.reason = reason


class StackFailedError(DeployError):
    """The stack settled in a failed or rolled-back status.

    ``logical_resource_id`` and ``reason`` point at the first resource that
    failed, which is usually the root cause of the rollback.
    """

    def __init__(
        self,
        stack_name: str,
        status: str,
        logical_resource_id: str | None = None,
        reason: str | None = None,
    ) -> None:
        if logical_resource_id:
            message = (
                f"stack {stack_name} ended in {status}: "
                f"resource {logical_resource_id} failed: {reason or 'no reason given'}"
            )
        else:
            message = f"stack {stack_name} ended in {status}"
            if reason:
                message += f": {reason}"
        super().__init__(message)
        self.stack_name = stack_name
        self.status = status
        self.logical_resource_id = logical_resource_id
        self.reason = reason


class StreamError(DeployError):
    """Fetching stack events failed; streaming stops."""


class TemplateError(DeployError):
    """A stack template could not be found or rendered."""


class ServiceNotFoundError(DeployError):
    def __init__(self, cluster: str, service: str) -> None:
        super().__init__(f"service {service} not found in cluster {cluster}")
        self.cluster = cluster
        self.service = service
