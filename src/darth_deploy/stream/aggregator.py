"""Multiplexes the events of a stack and its nested stacks to subscribers."""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime

from ..aws.cloudformation import CloudFormation, StackEvent
from ..aws.status import ResourceKind, is_upsert_in_progress, is_upserted
from .source import StackEventSource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0

# A batch of events delivered once per tick. ``None`` closes the stream.
Batch = list[StackEvent]


def nested_stack_id(event: StackEvent) -> str | None:
    """Return the child stack ARN if *event* shows a nested stack to follow."""
    if ResourceKind.of(event.resource_type) is not ResourceKind.NESTED_STACK:
        return None
    if event.is_stack_status or not event.physical_resource_id:
        return None
    status = event.resource_status
    if is_upsert_in_progress(status) or is_upserted(status):
        return event.physical_resource_id
    return None


class EventAggregator:
    """Polls one root stack plus any nested stacks it discovers along the way.

    Every tick fetches each source in registration order and broadcasts the
    combined batch to all subscribed queues. The first fetch error aborts
    the whole stream: the loop stops, subscribers are closed and the error
    is raised from :meth:`run`.
    """

    def __init__(
        self,
        cfn: CloudFormation,
        stack_name: str,
        cutoff: datetime,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._cfn = cfn
        self._poll_interval = poll_interval
        self._sources = [StackEventSource(cfn, stack_name, cutoff)]
        self._followed: set[str] = {stack_name}
        self._subscribers: list[queue.Queue[Batch | None]] = []
        self._pending: Batch = []
        self._closed = False

    @property
    def stack_names(self) -> list[str]:
        return [source.stack_name for source in self._sources]

    def subscribe(self, *sinks: queue.Queue[Batch | None]) -> None:
        """Register queues that receive every batch. Call before :meth:`run`."""
        self._subscribers.extend(sinks)

    def poll(self, *, follow_new: bool = False) -> Batch:
        """Run one tick: fetch every source and buffer the new events.

        Nested stacks discovered during the tick are fetched on the next one,
        unless *follow_new* is set, in which case they are fetched in this
        tick too, until no further stacks turn up.
        """
        batch: Batch = []
        start = 0
        while True:
            end = len(self._sources)
            for source in self._sources[start:end]:
                events = source.fetch()
                for event in events:
                    child = nested_stack_id(event)
                    if child is not None:
                        self._follow(child, source.cutoff)
                batch.extend(events)
            if not follow_new or len(self._sources) == end:
                break
            start = end
        self._pending.extend(batch)
        return batch

    def notify(self) -> None:
        """Deliver the buffered events to every subscriber as one batch."""
        if not self._pending:
            return
        batch, self._pending = self._pending, []
        for sink in self._subscribers:
            sink.put(list(batch))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sink in self._subscribers:
            sink.put(None)

    def run(self, stop: threading.Event) -> None:
        """Poll until *stop* is set, then flush one last tick and close."""
        try:
            while True:
                self.poll()
                self.notify()
                if stop.wait(self._poll_interval):
                    break
            # Statuses written just before the stop still reach subscribers.
            self.poll(follow_new=True)
            self.notify()
        finally:
            self.close()

    def _follow(self, stack_id: str, cutoff: datetime) -> None:
        if stack_id in self._followed:
            return
        logger.debug("Following nested stack %s", stack_id)
        self._followed.add(stack_id)
        self._sources.append(StackEventSource(self._cfn, stack_id, cutoff))
