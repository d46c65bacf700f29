"""Unit tests for EventLog."""

from feedfusion.src.OracleEvents import EventLog, SourceFailed, SourceUpdated
from feedfusion.src.SourceKind import SourceKind


class TestEventLog:
    """Test event retention and delivery."""

    def test_emit_and_filter(self) -> None:
        """Events are retained in order and filterable by asset."""
        log = EventLog()
        a = SourceUpdated("btc", SourceKind.REFERENCE, 100, 100, 1)
        b = SourceFailed("eth", SourceKind.DISPUTE, "not implemented", 2)
        log.emit(a)
        log.emit(b)

        assert log.events() == [a, b]
        assert log.events("eth") == [b]
        assert len(log) == 2

    def test_bounded(self) -> None:
        """Only the most recent events are kept."""
        log = EventLog(max_events=2)
        for i in range(5):
            log.emit(SourceUpdated("btc", SourceKind.REFERENCE, i, 100, i))

        assert [e.price for e in log.events()] == [3, 4]

    def test_subscribers_notified(self) -> None:
        """Subscribers receive every event."""
        log = EventLog()
        seen = []
        log.subscribe(seen.append)
        event = SourceFailed("btc", SourceKind.REQUEST, "timeout", 1)
        log.emit(event)

        assert seen == [event]

    def test_failing_subscriber_isolated(self) -> None:
        """A raising subscriber neither blocks others nor the emitter."""
        log = EventLog()
        seen = []

        def broken(event):
            raise RuntimeError("sink down")

        log.subscribe(broken)
        log.subscribe(seen.append)
        log.emit(SourceFailed("btc", SourceKind.REQUEST, "timeout", 1))

        assert len(seen) == 1
        assert len(log) == 1
