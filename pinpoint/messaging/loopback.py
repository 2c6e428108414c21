"""
pinpoint/messaging/loopback.py
In-process broker transport. Acknowledges on the scheduler after a fixed
latency and echoes published messages to matching subscriptions, so the
whole session lifecycle can run without a network (replay, HTTP sandbox,
tests). Every call is recorded for inspection.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from pinpoint.dispatch.scheduler import Scheduler
from pinpoint.messaging.base import (
    BrokerSettings,
    MessagingTransport,
    QoS,
    SessionIdentity,
    TransportListener,
    topic_matches,
)

logger = logging.getLogger(__name__)


@dataclass
class PublishedMessage:
    message_id: int
    topic:      str
    payload:    bytes
    qos:        QoS
    at:         float


class LoopbackTransport(MessagingTransport):

    def __init__(
        self,
        scheduler:    Scheduler,
        latency:      float = 0.0,
        accept:       bool  = True,
        subscribe_ok: bool  = True,
    ):
        """
        accept:       answer connects with an accepting ack (False = rejected)
        subscribe_ok: answer subscriptions with success
        """
        self.scheduler    = scheduler
        self.latency      = latency
        self.accept       = accept
        self.subscribe_ok = subscribe_ok
        self.connected    = False
        self.connect_calls:    List[str]              = []
        self.disconnect_calls: int                    = 0
        self.published:        List[PublishedMessage] = []
        self.subscriptions:    Set[str]               = set()
        self._listener: Optional[TransportListener] = None
        self._pending_connect = None
        self._ids = itertools.count(1)

    def set_listener(self, listener: TransportListener) -> None:
        self._listener = listener

    # ── MessagingTransport ───────────────────────────────────

    def connect(self, identity: SessionIdentity, settings: BrokerSettings) -> None:
        self.connect_calls.append(identity.client_id)
        self._pending_connect = self.scheduler.call_later(self.latency, self._complete_connect)

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._cancel_pending_connect()
        self.connected = False
        self.subscriptions.clear()
        self._deliver('on_disconnected', None)

    def subscribe(self, topic: str, qos: QoS = QoS.AT_LEAST_ONCE) -> None:
        ok = self.connected and self.subscribe_ok
        if ok:
            self.subscriptions.add(topic)
        self._deliver('on_subscribe_ack', topic, ok)

    def publish(self, topic: str, payload: bytes, qos: QoS = QoS.AT_MOST_ONCE) -> int:
        message_id = next(self._ids)
        if not self.connected:
            logger.debug(f"Loopback dropped {topic} — not connected")
            return message_id
        self.published.append(
            PublishedMessage(message_id, topic, payload, QoS(qos), self.scheduler.now())
        )
        self._deliver('on_publish_ack', message_id)
        for topic_filter in list(self.subscriptions):
            if topic_matches(topic_filter, topic):
                self._deliver('on_message', topic, payload)
                break
        return message_id

    # ── SIMULATION HOOKS ─────────────────────────────────────

    def force_disconnect(self, error: str = 'connection reset by peer') -> None:
        """Drop the connection from the broker side."""
        self._cancel_pending_connect()
        self.connected = False
        self.subscriptions.clear()
        self._deliver('on_disconnected', error)

    def published_on(self, suffix: str) -> List[PublishedMessage]:
        return [m for m in self.published if m.topic.endswith(suffix)]

    # ── INTERNAL ─────────────────────────────────────────────

    def _complete_connect(self) -> None:
        self._pending_connect = None
        if self.accept:
            self.connected = True
            self._deliver('on_connect_ack', True, '')
        else:
            self._deliver('on_connect_ack', False, 'not authorized')

    def _cancel_pending_connect(self) -> None:
        if self._pending_connect is not None:
            self._pending_connect.cancel()
            self._pending_connect = None

    def _deliver(self, method: str, *args) -> None:
        # Bound now: a listener swapped before delivery does not receive it
        if self._listener is None:
            return
        self.scheduler.call_later(self.latency, getattr(self._listener, method), *args)
