"""
pinpoint/messaging/session.py
Messaging Session Manager — sole owner of ConnectionState.

  Disconnected ──connect()──▶ Connecting ──ack accepted──▶ Connected
       ▲                          │                            │
       └── ack rejected / error / disconnect() / forced close ─┘

On Connected: subscribe to <device>/# . When the subscription is
acknowledged, the heartbeat starts (first beat immediately) and any held
position is relayed. Explicit disconnect and forced disconnect converge on
_teardown(), which always stops the heartbeat.

ATTEMPTS:
  Every connect() and explicit disconnect() starts a new session
  generation and installs a fresh listener on the transport. Callbacks
  arrive tagged with the generation whose listener received them;
  anything from an older generation (a close confirmation, a late ack, a
  drop of a connection already given up) is ignored.
"""

import json
import logging
from typing import Any, Callable, Optional

from pinpoint.dispatch.scheduler import RepeatingTimer, Scheduler
from pinpoint.errors import ConnectionFailure
from pinpoint.messaging.base import (
    BrokerSettings,
    MessagingTransport,
    QoS,
    SessionIdentity,
    TransportListener,
)
from pinpoint.models.state import ConnectionState, PositionFix
from pinpoint.store.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL_SEC = 5.0

# deliver(handler, *args): how transport callbacks reach the session
Deliver = Callable[..., Any]


def _call_now(handler, *args) -> None:
    handler(*args)


class _AttemptListener(TransportListener):
    """Transport callbacks for one session generation."""

    def __init__(self, session: 'MessagingSessionManager', generation: int):
        self.session    = session
        self.generation = generation

    def _forward(self, name: str, *args) -> None:
        self.session.deliver(self.session._on_transport_event, self.generation, name, args)

    def on_connect_ack(self, accepted, reason=''):
        self._forward('on_connect_ack', accepted, reason)

    def on_subscribe_ack(self, topic, success):
        self._forward('on_subscribe_ack', topic, success)

    def on_publish_ack(self, message_id):
        self._forward('on_publish_ack', message_id)

    def on_message(self, topic, payload):
        self._forward('on_message', topic, payload)

    def on_disconnected(self, error=None):
        self._forward('on_disconnected', error)


class MessagingSessionManager:

    def __init__(
        self,
        transport:          MessagingTransport,
        scheduler:          Scheduler,
        settings:           BrokerSettings,
        identity:           SessionIdentity,
        store:              Optional[SqliteKeyValueStore] = None,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL_SEC,
        deliver:            Deliver = _call_now,
    ):
        """
        deliver: called as deliver(handler, *args) for every transport
                 callback; the coordinator passes one that posts onto its
                 dispatcher. The default runs the handler inline.
        """
        self.transport  = transport
        self.scheduler  = scheduler
        self.settings   = settings
        self.identity   = identity
        self.store      = store
        self.state      = ConnectionState.DISCONNECTED
        self.subscribed = False

        self.connect_attempts  = 0
        self.heartbeats_sent   = 0
        self.positions_sent    = 0
        self.messages_received = 0
        self.last_error: Optional[ConnectionFailure] = None

        self._heartbeat = RepeatingTimer(
            scheduler, heartbeat_interval, self._publish_heartbeat, name='mqtt-heartbeat'
        )
        self._pending_position: Optional[PositionFix] = None
        self._position_ids: dict = {}

        self.deliver    = deliver
        self.generation = 0
        self.stale_callbacks = 0
        transport.set_listener(_AttemptListener(self, self.generation))

    # ── TOPICS ───────────────────────────────────────────────

    @property
    def subscription_topic(self) -> str:
        return f"{self.identity.topic_root}/#"

    @property
    def heartbeat_topic(self) -> str:
        return f"{self.identity.topic_root}/heartbeat"

    @property
    def location_topic(self) -> str:
        return f"{self.identity.topic_root}/location"

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat.active

    # ── COMMANDS ─────────────────────────────────────────────

    def connect(self) -> bool:
        """Start a session. No-op unless Disconnected. Returns True if an attempt was made."""
        if self.state != ConnectionState.DISCONNECTED:
            logger.info(f"[MQTT] Already {self.state.value}, skipping connect()")
            return False

        self.state = ConnectionState.CONNECTING
        self.connect_attempts += 1
        self._next_generation()
        logger.info(
            f"[MQTT] Connecting to {self.settings.host}:{self.settings.port} "
            f"as {self.identity.client_id} (tls={self.settings.use_tls})"
        )
        try:
            self.transport.connect(self.identity, self.settings)
        except Exception as e:
            self._fail(f"connect could not start: {e}")
            return False
        return True

    def disconnect(self) -> bool:
        """Tear the session down. Safe when already Disconnected (returns False)."""
        if self.state == ConnectionState.DISCONNECTED:
            self._heartbeat.stop()
            return False
        logger.info(f"[MQTT] Disconnecting (was {self.state.value})")
        self._teardown()
        try:
            self.transport.disconnect()
        except Exception as e:
            logger.warning(f"[MQTT] Transport disconnect raised: {e}")
        # The close confirmation belongs to the generation just ended
        self._next_generation()
        return True

    def relay_position(self, fix: PositionFix) -> bool:
        """
        Publish a position now if the session is ready, otherwise hold it
        (latest wins) until the subscription is acknowledged.
        Returns True if published immediately.
        """
        if self.state == ConnectionState.CONNECTED and self.subscribed:
            self._publish_position(fix)
            return True
        self._pending_position = fix
        logger.debug("[MQTT] Position held until session is ready")
        return False

    # ── TRANSPORT CALLBACKS ──────────────────────────────────

    def _on_transport_event(self, generation: int, name: str, args: tuple) -> None:
        if generation != self.generation:
            self.stale_callbacks += 1
            logger.debug(
                f"[MQTT] Ignoring {name} from session generation {generation} "
                f"(current {self.generation})"
            )
            return
        getattr(self, name)(*args)

    def on_connect_ack(self, accepted: bool, reason: str = '') -> None:
        if self.state != ConnectionState.CONNECTING:
            logger.debug(f"[MQTT] Ignoring stale connect ack (state={self.state.value})")
            return
        if not accepted:
            self._fail(f"broker rejected connection: {reason or 'no reason given'}")
            return

        self.state      = ConnectionState.CONNECTED
        self.last_error = None
        logger.info(f"[MQTT] Connected, subscribing to {self.subscription_topic}")
        try:
            self.transport.subscribe(self.subscription_topic, QoS.AT_LEAST_ONCE)
        except Exception as e:
            logger.warning(f"[MQTT] Subscribe could not start: {e}")

    def on_subscribe_ack(self, topic: str, success: bool) -> None:
        if self.state != ConnectionState.CONNECTED:
            logger.debug(f"[MQTT] Ignoring subscribe ack for {topic} (state={self.state.value})")
            return
        if not success:
            logger.warning(f"[MQTT] Subscription to {topic} failed — heartbeat not started")
            return

        self.subscribed = True
        logger.info(f"[MQTT] Subscribed to {topic}")
        self._heartbeat.start(fire_immediately=True)

        pending, self._pending_position = self._pending_position, None
        if pending is not None:
            self._publish_position(pending)

    def on_publish_ack(self, message_id: int) -> None:
        fix = self._position_ids.pop(message_id, None)
        if fix is None:
            logger.debug(f"[MQTT] Publish ack {message_id}")
            return
        if self.store is not None:
            self.store.save_last_report_timestamp(self.scheduler.now())
        logger.debug(f"[MQTT] Position {message_id} delivered")

    def on_message(self, topic: str, payload: bytes) -> None:
        self.messages_received += 1
        logger.debug(f"[MQTT] Message on {topic} ({len(payload)} bytes)")

    def on_disconnected(self, error: Optional[str] = None) -> None:
        if self.state == ConnectionState.DISCONNECTED:
            logger.debug("[MQTT] Disconnect notification while already disconnected")
            self._heartbeat.stop()
            return
        if error:
            self.last_error = ConnectionFailure(error)
            logger.warning(f"[MQTT] Connection lost: {error}")
        else:
            logger.info("[MQTT] Connection closed by remote")
        self._teardown()

    # ── INTERNAL ─────────────────────────────────────────────

    def _next_generation(self) -> None:
        self.generation += 1
        self.transport.set_listener(_AttemptListener(self, self.generation))

    def _fail(self, message: str) -> None:
        self.last_error = ConnectionFailure(message)
        logger.warning(f"[MQTT] {message}")
        self._teardown()

    def _teardown(self) -> None:
        self._heartbeat.stop()
        self.state      = ConnectionState.DISCONNECTED
        self.subscribed = False
        self._pending_position = None
        self._position_ids.clear()

    def _publish_heartbeat(self) -> None:
        if self.state != ConnectionState.CONNECTED:
            self._heartbeat.stop()
            return
        payload = json.dumps({
            'type':      'heartbeat',
            'client_id': self.identity.client_id,
            'device_id': self.identity.device_id,
            'ts':        int(self.scheduler.now()),
        }).encode('utf-8')
        self.transport.publish(self.heartbeat_topic, payload, QoS.AT_MOST_ONCE)
        self.heartbeats_sent += 1

    def _publish_position(self, fix: PositionFix) -> None:
        payload = json.dumps({
            'type':      'location',
            'device_id': self.identity.device_id,
            'lat':       fix.latitude,
            'lon':       fix.longitude,
            'ts':        fix.timestamp,
        }).encode('utf-8')
        message_id = self.transport.publish(self.location_topic, payload, QoS.AT_LEAST_ONCE)
        self._position_ids[message_id] = fix
        self.positions_sent += 1
        logger.debug(f"[MQTT] Position published as message {message_id}")
