"""Polls a single stack for events that have not been delivered yet."""

from __future__ import annotations

import logging
from datetime import datetime

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.cloudformation import CloudFormation, StackEvent
from ..errors import StreamError

logger = logging.getLogger(__name__)


class StackEventSource:
    """Event history of one stack, filtered to what is new since the last poll.

    Each source owns its seen-set and cutoff. Nested stacks get their own
    source instead of sharing state with the parent.
    """

    def __init__(self, cfn: CloudFormation, stack_name: str, cutoff: datetime) -> None:
        self._cfn = cfn
        self._stack_name = stack_name
        self._cutoff = cutoff
        self._seen: set[str] = set()

    @property
    def stack_name(self) -> str:
        return self._stack_name

    @property
    def cutoff(self) -> datetime:
        return self._cutoff

    def fetch(self) -> list[StackEvent]:
        """Return unseen events at or after the cutoff, oldest first."""
        try:
            events = self._cfn.describe_stack_events(self._stack_name)
        except (ClientError, BotoCoreError) as exc:
            raise StreamError(
                f"describe stack events {self._stack_name}: {exc}"
            ) from exc

        fresh: list[StackEvent] = []
        # The API lists events newest first.
        for event in reversed(events):
            if event.timestamp < self._cutoff:
                continue
            if event.event_id in self._seen:
                continue
            self._seen.add(event.event_id)
            fresh.append(event)
        if fresh:
            logger.debug("%d new events for stack %s", len(fresh), self._stack_name)
        return fresh
