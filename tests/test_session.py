"""
tests/test_session.py
The session runs transport callbacks inline here (no dispatcher).
"""

import json
from unittest.mock import MagicMock

from pinpoint.dispatch.scheduler import ManualScheduler
from pinpoint.errors import ConnectionFailure
from pinpoint.messaging import (
    BrokerSettings,
    LoopbackTransport,
    MessagingSessionManager,
    QoS,
    SessionIdentity,
    topic_matches,
)
from pinpoint.models.state import ConnectionState, PositionFix
from pinpoint.store.sqlite_store import SqliteKeyValueStore

DEVICE = "dev-1"


def _session(store=None, latency=0.0, accept=True, subscribe_ok=True, start=0.0):
    scheduler = ManualScheduler(start=start)
    transport = LoopbackTransport(scheduler, latency=latency, accept=accept, subscribe_ok=subscribe_ok)
    session = MessagingSessionManager(
        transport, scheduler,
        BrokerSettings(host="broker.test"),
        SessionIdentity(device_id=DEVICE, client_id=f"pinpoint-{DEVICE}"),
        store=store,
        heartbeat_interval=5.0,
    )
    return scheduler, transport, session


def _connected(**kwargs):
    scheduler, transport, session = _session(**kwargs)
    session.connect()
    scheduler.run_pending()
    return scheduler, transport, session


class TestConnect:

    def test_connect_subscribes_to_device_topic(self):
        _, transport, session = _connected()
        assert session.state == ConnectionState.CONNECTED
        assert session.subscribed
        assert transport.subscriptions == {f"{DEVICE}/#"}

    def test_second_connect_while_connecting_is_noop(self):
        scheduler, transport, session = _session(latency=1.0)
        assert session.connect() is True
        assert session.connect() is False
        assert session.state == ConnectionState.CONNECTING
        scheduler.advance(5.0)
        assert session.connect_attempts == 1
        assert len(transport.connect_calls) == 1

    def test_connect_while_connected_is_noop(self):
        _, transport, session = _connected()
        assert session.connect() is False
        assert len(transport.connect_calls) == 1

    def test_rejected_ack_records_failure(self):
        _, _, session = _connected(accept=False)
        assert session.state == ConnectionState.DISCONNECTED
        assert isinstance(session.last_error, ConnectionFailure)
        assert not session.heartbeat_active

    def test_transport_exception_records_failure(self):
        scheduler, transport, session = _session()
        transport.connect = MagicMock(side_effect=OSError("no route to host"))
        assert session.connect() is False
        assert session.state == ConnectionState.DISCONNECTED
        assert "no route to host" in str(session.last_error)

    def test_stale_connect_ack_ignored(self):
        _, _, session = _session()
        session.on_connect_ack(True)
        assert session.state == ConnectionState.DISCONNECTED

    def test_failed_subscription_keeps_connection_without_heartbeat(self):
        _, transport, session = _connected(subscribe_ok=False)
        assert session.state == ConnectionState.CONNECTED
        assert not session.subscribed
        assert not session.heartbeat_active
        assert transport.published_on("/heartbeat") == []


class TestHeartbeat:

    def test_first_beat_immediately_then_every_interval(self):
        scheduler, transport, _ = _connected(start=1000.0)
        scheduler.advance(12.0)
        beats = transport.published_on("/heartbeat")
        assert [m.at for m in beats] == [1000.0, 1005.0, 1010.0]
        assert all(m.qos == QoS.AT_MOST_ONCE for m in beats)
        payload = json.loads(beats[0].payload)
        assert payload == {
            "type": "heartbeat", "client_id": f"pinpoint-{DEVICE}",
            "device_id": DEVICE, "ts": 1000,
        }

    def test_forced_disconnect_halts_heartbeat(self):
        scheduler, transport, session = _connected()
        scheduler.advance(5.0)
        sent = session.heartbeats_sent
        transport.force_disconnect("keepalive timeout")
        scheduler.run_pending()
        scheduler.advance(30.0)
        assert session.state == ConnectionState.DISCONNECTED
        assert session.heartbeats_sent == sent
        assert "keepalive timeout" in str(session.last_error)
        assert not session.heartbeat_active

    def test_explicit_disconnect_halts_heartbeat(self):
        scheduler, _, session = _connected()
        assert session.disconnect() is True
        scheduler.advance(30.0)
        assert session.heartbeats_sent == 1
        assert scheduler.pending() == 0

    def test_disconnect_when_disconnected_is_noop(self):
        _, transport, session = _session()
        assert session.disconnect() is False
        assert transport.disconnect_calls == 0


class TestStaleClose:

    def test_close_confirmation_does_not_tear_down_new_session(self):
        scheduler, transport, session = _session(latency=0.5)
        session.connect()
        scheduler.advance(1.0)
        session.disconnect()
        # Reconnect before the transport confirms the close
        session.connect()
        scheduler.advance(2.0)
        assert session.state == ConnectionState.CONNECTED
        assert session.subscribed

    def test_drop_of_abandoned_session_does_not_touch_new_one(self):
        scheduler, transport, session = _connected()
        transport.force_disconnect("connection reset")
        session.disconnect()
        session.relay_position(PositionFix(44.97, -93.26, 1.0))
        session.connect()
        scheduler.run_pending()
        assert session.state == ConnectionState.CONNECTED
        assert session.subscribed
        assert transport.connected
        assert session.last_error is None
        assert session.stale_callbacks == 2
        assert len(transport.published_on("/location")) == 1

    def test_drop_of_current_session_is_handled(self):
        scheduler, transport, session = _connected()
        transport.force_disconnect("connection reset")
        scheduler.run_pending()
        assert session.state == ConnectionState.DISCONNECTED
        assert session.stale_callbacks == 0
        assert "connection reset" in str(session.last_error)


class TestPositionRelay:

    def test_relay_when_ready_publishes_qos1(self):
        _, transport, session = _connected()
        fix = PositionFix(44.97, -93.26, 1718000000.5)
        assert session.relay_position(fix) is True
        [msg] = transport.published_on("/location")
        assert msg.qos == QoS.AT_LEAST_ONCE
        assert json.loads(msg.payload) == {
            "type": "location", "device_id": DEVICE,
            "lat": 44.97, "lon": -93.26, "ts": 1718000000.5,
        }

    def test_held_until_subscribed_latest_wins(self):
        scheduler, transport, session = _session()
        session.connect()
        session.relay_position(PositionFix(1.0, 1.0, 1.0))
        session.relay_position(PositionFix(2.0, 2.0, 2.0))
        scheduler.run_pending()
        [msg] = transport.published_on("/location")
        assert json.loads(msg.payload)["lat"] == 2.0

    def test_held_position_dropped_on_teardown(self):
        scheduler, transport, session = _session(latency=1.0)
        session.connect()
        session.relay_position(PositionFix(1.0, 1.0, 1.0))
        session.disconnect()
        session.connect()
        scheduler.advance(5.0)
        assert transport.published_on("/location") == []

    def test_ack_writes_last_report_timestamp(self, tmp_path):
        store = SqliteKeyValueStore(tmp_path / "kv.db")
        scheduler, _, session = _connected(store=store, start=1718000000.0)
        session.relay_position(PositionFix(1.0, 1.0, 1.0))
        scheduler.run_pending()
        assert store.load_last_report_timestamp() == 1718000000

    def test_heartbeat_ack_does_not_write_timestamp(self, tmp_path):
        store = SqliteKeyValueStore(tmp_path / "kv.db")
        scheduler, _, _ = _connected(store=store)
        scheduler.advance(10.0)
        assert store.load_last_report_timestamp() is None


class TestInbound:

    def test_messages_on_device_topic_counted(self):
        scheduler, _, session = _connected()
        scheduler.advance(5.0)
        # Heartbeats loop back through the <device>/# subscription
        assert session.messages_received == session.heartbeats_sent == 2


class TestTopicMatches:

    def test_wildcards(self):
        assert topic_matches("dev/#", "dev/heartbeat")
        assert topic_matches("dev/#", "dev/a/b")
        assert topic_matches("dev/+/x", "dev/a/x")
        assert not topic_matches("dev/+/x", "dev/a/y")
        assert not topic_matches("dev/#", "other/heartbeat")
        assert topic_matches("dev/location", "dev/location")
