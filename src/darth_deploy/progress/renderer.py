"""Live tree of resource statuses built from streamed stack events."""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.live import Live
from rich.text import Text
from rich.tree import Tree

from ..aws.cloudformation import Change, StackEvent
from ..aws.ecs import ServiceRollout, parse_service_arn
from ..aws.status import ResourceKind, is_failure, is_in_progress
from ..errors import DeployError

logger = logging.getLogger(__name__)

NOT_STARTED = "NOT_STARTED"


class RolloutResolver(Protocol):
    def service_rollout_status(self, cluster: str, service: str) -> ServiceRollout: ...


@dataclass
class ResourceNode:
    """One resource in the tree. Nested stacks own their resources as children."""

    logical_id: str
    resource_type: str = ""
    status: str = NOT_STARTED
    reason: str = ""
    timestamp: datetime | None = None
    physical_id: str = ""
    detail: str = ""
    children: list[ResourceNode] = field(default_factory=list)

    def child(self, logical_id: str) -> ResourceNode | None:
        return next((c for c in self.children if c.logical_id == logical_id), None)

    def find(self, logical_id: str) -> ResourceNode | None:
        """Depth-first search for a resource anywhere under this node."""
        for c in self.children:
            if c.logical_id == logical_id:
                return c
            found = c.find(logical_id)
            if found is not None:
                return found
        return None


def _status_style(status: str) -> str:
    if status == NOT_STARTED:
        return "dim"
    if is_failure(status):
        return "red"
    if is_in_progress(status):
        return "yellow"
    return "green"


class ProgressRenderer:
    """Applies event batches to a resource tree and redraws it after each batch.

    The tree must only be touched from the thread running :meth:`listen`.
    Events are applied last-write-wins by timestamp, so a late, older event
    never overwrites a newer status for the same resource.
    """

    def __init__(
        self,
        stack_name: str,
        *,
        changes: Iterable[Change] = (),
        console: Console | None = None,
        rollouts: RolloutResolver | None = None,
    ) -> None:
        self.root = ResourceNode(stack_name, ResourceKind.NESTED_STACK.value)
        self._console = console
        self._rollouts = rollouts
        self._live: Live | None = None
        # Stack name or ARN -> node whose children are that stack's resources.
        self._owners: dict[str, ResourceNode] = {stack_name: self.root}
        for change in changes:
            self.root.children.append(
                ResourceNode(change.logical_id, change.resource_type)
            )

    def notify(self, events: Iterable[StackEvent]) -> None:
        for event in events:
            self.apply(event)
        self.flush()

    def apply(self, event: StackEvent) -> ResourceNode:
        owner = self._owner(event)
        if event.is_stack_status:
            node = owner
        else:
            node = owner.child(event.logical_resource_id)
            if node is None:
                node = ResourceNode(event.logical_resource_id, event.resource_type)
                owner.children.append(node)

        if node.timestamp is not None and event.timestamp < node.timestamp:
            return node

        node.status = event.resource_status
        node.reason = event.status_reason
        node.timestamp = event.timestamp
        node.resource_type = event.resource_type or node.resource_type
        if event.physical_resource_id:
            node.physical_id = event.physical_resource_id

        kind = ResourceKind.of(node.resource_type)
        if (
            kind is ResourceKind.NESTED_STACK
            and not event.is_stack_status
            and event.physical_resource_id
        ):
            self._adopt(node, event.physical_resource_id)
        if kind is ResourceKind.ECS_SERVICE and "FAILED" in node.status:
            node.detail = self._rollout_detail(node.physical_id)
        return node

    def render(self) -> Tree:
        tree = Tree(self._label(self.root))
        self._add_children(tree, self.root)
        return tree

    def flush(self) -> None:
        if self._live is not None:
            self._live.update(self.render(), refresh=True)

    def start(self) -> None:
        if self._console is None or self._live is not None:
            return
        self._live = Live(
            self.render(),
            console=self._console,
            auto_refresh=False,
            transient=False,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.update(self.render(), refresh=True)
        self._live.stop()
        self._live = None

    def listen(self, sink: queue.Queue[list[StackEvent] | None]) -> None:
        """Consume batches from *sink* until the stream is closed."""
        self.start()
        try:
            while True:
                batch = sink.get()
                if batch is None:
                    return
                self.notify(batch)
        finally:
            self.stop()

    def _owner(self, event: StackEvent) -> ResourceNode:
        node = self._owners.get(event.stack_id) or self._owners.get(event.stack_name)
        if node is not None:
            if event.stack_id:
                self._owners.setdefault(event.stack_id, node)
            return node
        # A nested stack whose parent resource event hasn't arrived yet.
        placeholder = ResourceNode(
            event.stack_name or event.stack_id,
            ResourceKind.NESTED_STACK.value,
            physical_id=event.stack_id,
        )
        self.root.children.append(placeholder)
        for key in (event.stack_id, event.stack_name):
            if key:
                self._owners[key] = placeholder
        return placeholder

    def _adopt(self, node: ResourceNode, stack_id: str) -> None:
        """Make *node* the owner of the nested stack *stack_id*."""
        existing = self._owners.get(stack_id)
        self._owners[stack_id] = node
        if existing is None or existing is node:
            return
        for key, owner in list(self._owners.items()):
            if owner is existing:
                self._owners[key] = node
        self.root.children = [c for c in self.root.children if c is not existing]
        for c in existing.children:
            if node.child(c.logical_id) is None:
                node.children.append(c)

    def _rollout_detail(self, service_arn: str) -> str:
        if self._rollouts is None or not service_arn:
            return ""
        try:
            cluster, service = parse_service_arn(service_arn)
            rollout = self._rollouts.service_rollout_status(cluster, service)
        except (ValueError, DeployError, ClientError, BotoCoreError) as exc:
            logger.debug("Could not look up rollout for %s: %s", service_arn, exc)
            return ""
        return rollout.human_string()

    def _label(self, node: ResourceNode) -> Text:
        text = Text(node.logical_id, style="bold")
        text.append("  ")
        text.append(
            node.status.replace("_", " ").lower()
            if node.status == NOT_STARTED
            else node.status,
            style=_status_style(node.status),
        )
        if node.reason and is_failure(node.status):
            text.append(f"  [{node.reason}]", style="red")
        return text

    def _add_children(self, branch: Tree, node: ResourceNode) -> None:
        if node.detail:
            branch.add(Text(node.detail, style="dim"))
        for c in node.children:
            sub = branch.add(self._label(c))
            self._add_children(sub, c)
