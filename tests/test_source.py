import pytest

from conftest import NOW, STACK_NAME, at, client_error, make_event
from darth_deploy.errors import StreamError
from darth_deploy.stream.source import StackEventSource


class TestStackEventSource:
    def test_returns_events_oldest_first(self, cfn):
        """The API's newest-first order is reversed."""
        cfn.events[STACK_NAME] = [
            make_event("Queue", "CREATE_COMPLETE", seconds=20),
            make_event("Topic", "CREATE_IN_PROGRESS", seconds=10),
            make_event("Queue", "CREATE_IN_PROGRESS", seconds=5),
        ]
        source = StackEventSource(cfn, STACK_NAME, NOW)

        events = source.fetch()

        assert [e.timestamp for e in events] == [at(5), at(10), at(20)]

    def test_drops_events_before_cutoff(self, cfn):
        """Events from earlier deployments are never emitted."""
        cfn.events[STACK_NAME] = [
            make_event("Queue", "UPDATE_IN_PROGRESS", seconds=1),
            make_event("Queue", "UPDATE_COMPLETE", seconds=-1),
            make_event("Queue", "UPDATE_IN_PROGRESS", seconds=-60),
        ]
        source = StackEventSource(cfn, STACK_NAME, NOW)

        events = source.fetch()

        assert [e.resource_status for e in events] == ["UPDATE_IN_PROGRESS"]
        assert events[0].timestamp == at(1)

    def test_event_at_cutoff_is_kept(self, cfn):
        cfn.events[STACK_NAME] = [make_event("Queue", "CREATE_IN_PROGRESS", seconds=0)]
        source = StackEventSource(cfn, STACK_NAME, NOW)

        assert len(source.fetch()) == 1

    def test_each_event_is_emitted_once(self, cfn):
        """Events already returned by an earlier fetch are skipped."""
        first = make_event("Queue", "CREATE_IN_PROGRESS", seconds=1)
        second = make_event("Queue", "CREATE_COMPLETE", seconds=2)
        cfn.events[STACK_NAME] = [first]
        source = StackEventSource(cfn, STACK_NAME, NOW)

        assert source.fetch() == [first]

        cfn.events[STACK_NAME] = [second, first]
        assert source.fetch() == [second]
        assert source.fetch() == []

    def test_wraps_fetch_errors(self, cfn):
        """A failed describe call names the stack and keeps the cause."""
        cause = client_error("Throttling", "Rate exceeded", "DescribeStackEvents")
        cfn.event_errors[STACK_NAME] = cause
        source = StackEventSource(cfn, STACK_NAME, NOW)

        with pytest.raises(StreamError) as excinfo:
            source.fetch()

        assert str(excinfo.value).startswith(f"describe stack events {STACK_NAME}: ")
        assert "Rate exceeded" in str(excinfo.value)
        assert excinfo.value.__cause__ is cause
