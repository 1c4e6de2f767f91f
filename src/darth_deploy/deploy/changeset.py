"""Create, review and execute CloudFormation change sets."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from ..aws.cloudformation import (
    DEFAULT_CAPABILITIES,
    Change,
    CloudFormation,
    error_code,
    error_message,
)
from ..errors import ChangeSetNotExecutableError, DeployError, StackAlreadyExistsError

logger = logging.getLogger(__name__)

EXECUTION_AVAILABLE = "AVAILABLE"
EXECUTION_UNAVAILABLE = "UNAVAILABLE"

# Reasons CloudFormation gives for change sets that would not change anything.
NO_CHANGES_REASONS = (
    "The submitted information didn't contain changes",
    "No updates are to be performed",
)

MAX_CHANGE_SET_NAME_LENGTH = 128


class ChangeSetState(str, Enum):
    CREATED = "created"
    WAITING_FOR_CREATION = "waiting-for-creation"
    AVAILABLE = "available"
    SKIPPED_NO_CHANGES = "skipped-no-changes"
    FAILED_TO_CREATE = "failed-to-create"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    EXECUTION_FAILED = "execution-failed"


@dataclass
class ChangeSet:
    """A submitted change set and where it is in its lifecycle."""

    id: str
    name: str
    stack_id: str
    stack_name: str
    created: bool
    created_at: datetime
    state: ChangeSetState = ChangeSetState.CREATED
    execution_status: str = ""
    status_reason: str = ""
    changes: list[Change] = field(default_factory=list)

    def __str__(self) -> str:
        return f"name={self.id}, stack={self.stack_id}"


def is_empty_change_set(execution_status: str, status_reason: str) -> bool:
    """Whether a computed change set was rejected only for having no changes."""
    if execution_status != EXECUTION_UNAVAILABLE:
        return False
    return any(reason in status_reason for reason in NO_CHANGES_REASONS)


def change_set_name(prefix: str) -> str:
    """Return a unique, valid change set name starting with *prefix*."""
    name = f"{prefix}-{uuid.uuid4()}"
    return name[:MAX_CHANGE_SET_NAME_LENGTH]


def _already_exists(exc: ClientError) -> bool:
    code = error_code(exc)
    if code == "AlreadyExistsException":
        return True
    return code == "ValidationError" and "already exists" in error_message(exc)


class ChangeSetController:
    """Drives one change set from submission to execution."""

    def __init__(
        self,
        cfn: CloudFormation,
        *,
        name_prefix: str = "darth",
        wait_delay: int = 5,
        wait_max_attempts: int = 120,
    ) -> None:
        self._cfn = cfn
        self._name_prefix = name_prefix
        self._wait_delay = wait_delay
        self._wait_max_attempts = wait_max_attempts

    def submit(
        self,
        stack_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
        *,
        create: bool,
        description: str | None = None,
        capabilities: tuple[str, ...] = DEFAULT_CAPABILITIES,
    ) -> ChangeSet:
        """Propose a change to *stack_name*.

        Raises:
            StackAlreadyExistsError: *create* was requested but the stack exists.
            DeployError: any other failure from CloudFormation.
        """
        name = change_set_name(self._name_prefix)
        submitted_at = datetime.now(timezone.utc)
        try:
            change_set_id, stack_id = self._cfn.create_change_set(
                stack_name=stack_name,
                change_set_name=name,
                template_body=template_body,
                parameters=parameters,
                tags=tags,
                create=create,
                description=description,
                capabilities=capabilities,
            )
        except ClientError as exc:
            if create and _already_exists(exc):
                raise StackAlreadyExistsError(stack_name) from exc
            raise DeployError(
                f"create change set for stack {stack_name}: {exc}"
            ) from exc
        except BotoCoreError as exc:
            raise DeployError(
                f"create change set for stack {stack_name}: {exc}"
            ) from exc

        logger.debug(
            "Created %s change set %s for stack %s",
            "create" if create else "update",
            change_set_id,
            stack_name,
        )
        return ChangeSet(
            id=change_set_id,
            name=name,
            stack_id=stack_id,
            stack_name=stack_name,
            created=create,
            created_at=submitted_at,
        )

    def wait_for_review(self, change_set: ChangeSet) -> list[Change]:
        """Wait for the change set to be computed and return its changes.

        An empty change set is not an error: the state becomes
        ``SKIPPED_NO_CHANGES`` and an empty list is returned.

        Raises:
            ChangeSetNotExecutableError: the change set can't be executed.
            DeployError: waiting or describing failed.
        """
        change_set.state = ChangeSetState.WAITING_FOR_CREATION
        waiter_error: WaiterError | None = None
        try:
            self._cfn.wait_until_change_set_created(
                change_set.id,
                change_set.stack_id,
                delay=self._wait_delay,
                max_attempts=self._wait_max_attempts,
            )
        except WaiterError as exc:
            # Empty change sets end up FAILED, so the description decides.
            waiter_error = exc

        try:
            description = self._cfn.describe_change_set(
                change_set.id, change_set.stack_id
            )
        except (ClientError, BotoCoreError) as exc:
            change_set.state = ChangeSetState.FAILED_TO_CREATE
            raise DeployError(f"describe change set {change_set}: {exc}") from exc

        change_set.execution_status = description.execution_status
        change_set.status_reason = description.status_reason
        if description.creation_time is not None:
            change_set.created_at = description.creation_time

        if is_empty_change_set(description.execution_status, description.status_reason):
            logger.debug("Change set %s has no changes", change_set.id)
            change_set.state = ChangeSetState.SKIPPED_NO_CHANGES
            change_set.changes = []
            return []

        if waiter_error is not None and description.status != "FAILED":
            change_set.state = ChangeSetState.FAILED_TO_CREATE
            raise DeployError(
                f"wait for creation of change set {change_set}: {waiter_error}"
            ) from waiter_error

        if description.execution_status != EXECUTION_AVAILABLE:
            change_set.state = ChangeSetState.FAILED_TO_CREATE
            raise ChangeSetNotExecutableError(
                change_set.id,
                change_set.stack_id,
                description.execution_status,
                description.status_reason,
            )

        change_set.state = ChangeSetState.AVAILABLE
        change_set.changes = list(description.changes)
        return change_set.changes

    def execute(self, change_set: ChangeSet) -> None:
        change_set.state = ChangeSetState.EXECUTING
        try:
            self._cfn.execute_change_set(change_set.id, change_set.stack_id)
        except (ClientError, BotoCoreError) as exc:
            change_set.state = ChangeSetState.EXECUTION_FAILED
            raise DeployError(f"execute change set {change_set}: {exc}") from exc

    def discard(self, change_set: ChangeSet) -> None:
        """Delete a change set that won't be executed. Best effort."""
        try:
            self._cfn.delete_change_set(change_set.id, change_set.stack_id)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Could not delete change set %s: %s", change_set, exc)
