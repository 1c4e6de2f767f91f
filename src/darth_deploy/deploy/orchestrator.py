"""Deploy a stack through a change set while streaming its progress."""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console

from ..aws.cloudformation import DEFAULT_CAPABILITIES, Change, CloudFormation, Stack
from ..aws.status import is_delete_terminal, is_terminal
from ..errors import (
    DeployError,
    StackAlreadyExistsError,
    StackFailedError,
    StreamError,
)
from ..progress.renderer import ProgressRenderer, RolloutResolver
from ..stream.aggregator import DEFAULT_POLL_INTERVAL, Batch, EventAggregator
from .changeset import ChangeSet, ChangeSetController, ChangeSetState

logger = logging.getLogger(__name__)


@dataclass
class DeployRequest:
    """Everything needed to create or update one stack."""

    stack_name: str
    template_body: str
    parameters: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    description: str | None = None
    capabilities: tuple[str, ...] = DEFAULT_CAPABILITIES


@dataclass
class DeployResult:
    stack_name: str
    skipped: bool = False
    stack: Stack | None = None
    changes: list[Change] = field(default_factory=list)
    change_set: ChangeSet | None = None


class Deployer:
    """Submits change sets, executes them, and waits for the stack to settle.

    Progress is streamed to *console* as a live tree unless *console* is None.
    """

    def __init__(
        self,
        cfn: CloudFormation,
        *,
        console: Console | None = None,
        rollouts: RolloutResolver | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stack_poll_interval: float = 3.0,
        change_set_prefix: str = "darth",
        change_set_wait_delay: int = 5,
        change_set_wait_max_attempts: int = 120,
    ) -> None:
        self._cfn = cfn
        self._console = console
        self._rollouts = rollouts
        self._poll_interval = poll_interval
        self._stack_poll_interval = stack_poll_interval
        self._change_sets = ChangeSetController(
            cfn,
            name_prefix=change_set_prefix,
            wait_delay=change_set_wait_delay,
            wait_max_attempts=change_set_wait_max_attempts,
        )

    def deploy(self, request: DeployRequest) -> DeployResult:
        """Create or update ``request.stack_name`` and block until it settles.

        Raises:
            ChangeSetNotExecutableError: the change set can't be applied.
            StackFailedError: the stack failed or rolled back.
            StreamError: progress streaming failed before the stack settled.
            DeployError: any other CloudFormation failure.
        """
        change_set = self._submit(request)
        changes = self._change_sets.wait_for_review(change_set)
        if change_set.state is ChangeSetState.SKIPPED_NO_CHANGES:
            logger.info("No changes to deploy for stack %s", request.stack_name)
            self._change_sets.discard(change_set)
            return DeployResult(
                stack_name=request.stack_name, skipped=True, change_set=change_set
            )

        stack = self._run(
            request.stack_name,
            root=change_set.stack_id,
            cutoff=change_set.created_at,
            changes=changes,
            start=lambda: self._change_sets.execute(change_set),
            settled=lambda s: _settled(s, change_set),
        )
        expected = "CREATE_COMPLETE" if change_set.created else "UPDATE_COMPLETE"
        if stack.status != expected:
            change_set.state = ChangeSetState.EXECUTION_FAILED
            raise self._stack_failure(stack, change_set.created_at)
        change_set.state = ChangeSetState.SUCCEEDED
        return DeployResult(
            stack_name=request.stack_name,
            stack=stack,
            changes=changes,
            change_set=change_set,
        )

    def delete(self, stack_name: str) -> None:
        """Delete *stack_name* and block until it is gone."""
        stack = self.describe(stack_name)
        cutoff = self._delete_cutoff(stack)

        def start() -> None:
            try:
                self._cfn.delete_stack(stack.stack_id)
            except (ClientError, BotoCoreError) as exc:
                raise DeployError(f"delete stack {stack_name}: {exc}") from exc

        final = self._run(
            stack_name,
            # Deleted stacks can only be described by ARN.
            root=stack.stack_id,
            cutoff=cutoff,
            changes=(),
            start=start,
            settled=lambda s: is_delete_terminal(s.status),
        )
        if final.status != "DELETE_COMPLETE":
            raise self._stack_failure(final, cutoff)

    def describe(self, stack_name: str) -> Stack:
        try:
            return self._cfn.describe_stack(stack_name)
        except (ClientError, BotoCoreError) as exc:
            raise DeployError(f"describe stack {stack_name}: {exc}") from exc

    def stream_events(
        self,
        stack_name: str,
        *sinks: queue.Queue[Batch | None],
        since: datetime | None = None,
    ) -> EventAggregator:
        """Return an aggregator for *stack_name* feeding *sinks*.

        The caller runs it with :meth:`EventAggregator.run`.
        """
        aggregator = EventAggregator(
            self._cfn,
            stack_name,
            since or datetime.now(timezone.utc),
            poll_interval=self._poll_interval,
        )
        aggregator.subscribe(*sinks)
        return aggregator

    def _submit(self, request: DeployRequest) -> ChangeSet:
        args = (
            request.stack_name,
            request.template_body,
            request.parameters,
            request.tags,
        )
        kwargs = {
            "description": request.description,
            "capabilities": request.capabilities,
        }
        try:
            return self._change_sets.submit(*args, create=True, **kwargs)
        except StackAlreadyExistsError:
            logger.debug("Stack %s exists, updating instead", request.stack_name)
            return self._change_sets.submit(*args, create=False, **kwargs)

    def _run(
        self,
        stack_name: str,
        *,
        root: str,
        cutoff: datetime,
        changes: Iterable[Change],
        start: Callable[[], None],
        settled: Callable[[Stack], bool],
    ) -> Stack:
        """Start an operation and stream its events until the stack settles."""
        sink: queue.Queue[Batch | None] = queue.Queue()
        aggregator = self.stream_events(root, sink, since=cutoff)
        renderer = ProgressRenderer(
            stack_name,
            changes=changes,
            console=self._console,
            rollouts=self._rollouts,
        )
        stop = threading.Event()

        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="darth") as pool:
            streaming = pool.submit(aggregator.run, stop)
            rendering = pool.submit(renderer.listen, sink)
            watching = pool.submit(self._watch, root, start, settled, stop)
            wait([streaming, watching], return_when=FIRST_COMPLETED)
            stop.set()
            wait([streaming, watching])

        if rendering.exception() is not None:
            logger.warning("Progress display failed: %s", rendering.exception())
        stack = watching.result()
        stream_error = _stream_error(streaming)
        if stack is None:
            # The watcher only stops early when the stream failed first.
            raise StreamError(
                f"stream events for stack {stack_name}: {stream_error}; "
                "the stack may still be updating"
            ) from stream_error
        if stream_error is not None:
            logger.warning(
                "Event stream for %s ended with an error: %s", stack_name, stream_error
            )
        return stack

    def _watch(
        self,
        stack_name: str,
        start: Callable[[], None],
        settled: Callable[[Stack], bool],
        stop: threading.Event,
    ) -> Stack | None:
        start()
        while True:
            stack = self.describe(stack_name)
            logger.debug("Stack %s is %s", stack_name, stack.status)
            if settled(stack):
                return stack
            if stop.wait(self._stack_poll_interval):
                return None

    def _delete_cutoff(self, stack: Stack) -> datetime:
        """Just after the stack's newest event, read from CloudFormation's clock."""
        try:
            events = self._cfn.describe_stack_events(stack.stack_id)
        except (ClientError, BotoCoreError) as exc:
            raise DeployError(f"describe stack events {stack.name}: {exc}") from exc
        if events:
            # Event timestamps have millisecond precision.
            return events[0].timestamp + timedelta(milliseconds=1)
        return (
            stack.last_updated_time
            or stack.creation_time
            or datetime.now(timezone.utc)
        )

    def _stack_failure(self, stack: Stack, cutoff: datetime) -> StackFailedError:
        """Find the first failed resource event since *cutoff*."""
        try:
            events = self._cfn.describe_stack_events(stack.stack_id or stack.name)
        except (ClientError, BotoCoreError) as exc:
            logger.warning("Could not read events for %s: %s", stack.name, exc)
            events = []
        failed = [
            e
            for e in reversed(events)
            if e.timestamp >= cutoff
            and "FAILED" in e.resource_status
            and not e.is_stack_status
        ]
        if not failed:
            return StackFailedError(stack.name, stack.status, reason=stack.status_reason)
        first = failed[0]
        return StackFailedError(
            stack.name,
            stack.status,
            logical_resource_id=first.logical_resource_id,
            reason=first.status_reason,
        )


def _settled(stack: Stack, change_set: ChangeSet) -> bool:
    if not is_terminal(stack.status, created=change_set.created):
        return False
    # Before the update starts the stack still reports the previous outcome.
    updated = stack.last_updated_time
    return change_set.created or (updated is not None and updated >= change_set.created_at)


def _stream_error(future: Future[None]) -> Exception | None:
    exc = future.exception()
    if exc is None:
        return None
    if isinstance(exc, Exception):
        return exc
    raise exc
