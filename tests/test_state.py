"""
Test Connection State
=====================

Unit tests for the shared connection state and observer fan-out.
"""

from pathlib import Path

# Add parent directory to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.state import (
    ConnectionState, ConnectionStatus, Notifier, CONNECTION_STATUS_CHANGED,
)


class TestNotifier:
    """Tests for Notifier."""

    def test_emit_to_all_observers(self):
        notifier = Notifier()
        seen = []
        notifier.subscribe(lambda event, payload: seen.append(("a", event)))
        notifier.subscribe(lambda event, payload: seen.append(("b", event)))
        notifier.emit("message-recorded", {"id": 1})
        assert seen == [("a", "message-recorded"), ("b", "message-recorded")]

    def test_failing_observer_does_not_stop_others(self):
        notifier = Notifier()
        seen = []

        def broken(event, payload):
            raise RuntimeError("socket closed")

        notifier.subscribe(broken)
        notifier.subscribe(lambda event, payload: seen.append(payload))
        notifier.emit("message-recorded", {"id": 2})
        assert seen == [{"id": 2}]

    def test_unsubscribe(self):
        notifier = Notifier()
        seen = []
        observer = lambda event, payload: seen.append(event)  # noqa: E731
        notifier.subscribe(observer)
        notifier.unsubscribe(observer)
        notifier.emit("message-recorded", {})
        assert seen == []


class TestConnectionState:
    """Tests for ConnectionState."""

    def test_initial_state(self):
        state = ConnectionState()
        assert state.status == ConnectionStatus.NOT_CONNECTED
        assert not state.is_connected

    def test_set_status_notifies(self):
        notifier = Notifier()
        events = []
        notifier.subscribe(lambda event, payload: events.append((event, payload)))
        state = ConnectionState(notifier)

        state.set_status(ConnectionStatus.NOT_CONNECTED, reason="Session closed")
        assert events == [(CONNECTION_STATUS_CHANGED, {"status": "not_connected", "reason": "Session closed"})]

    def test_qr_kept_only_while_generated(self):
        state = ConnectionState()
        state.set_status(ConnectionStatus.QR_GENERATED, qr_code="qr-data")
        assert state.qr_code == "qr-data"

        state.set_status(ConnectionStatus.CONNECTED, qr_code="ignored")
        assert state.qr_code is None
        assert state.is_connected
        assert state.snapshot().status == ConnectionStatus.CONNECTED
