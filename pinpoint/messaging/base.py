"""
pinpoint/messaging/base.py
Messaging transport contract. The session manager only relies on this:
connect / disconnect / subscribe / publish, each acknowledged later through
a TransportListener, plus unsolicited disconnect notifications.
To plug in a real broker client: subclass MessagingTransport.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class QoS(IntEnum):
    AT_MOST_ONCE  = 0
    AT_LEAST_ONCE = 1
    EXACTLY_ONCE  = 2


@dataclass
class BrokerSettings:
    host:           str
    port:           int   = 8883
    username:       str   = ''
    password:       str   = ''        # never logged
    use_tls:        bool  = True
    keep_alive_sec: int   = 60
    auto_reconnect: bool  = False     # transport-level best effort, not coordinated


@dataclass
class SessionIdentity:
    """Who this device is on the broker."""
    device_id:  str
    client_id:  str

    @property
    def topic_root(self) -> str:
        return self.device_id


class TransportListener(ABC):
    """Acknowledgements and notifications delivered by a transport."""

    @abstractmethod
    def on_connect_ack(self, accepted: bool, reason: str = '') -> None:
        ...

    @abstractmethod
    def on_subscribe_ack(self, topic: str, success: bool) -> None:
        ...

    @abstractmethod
    def on_publish_ack(self, message_id: int) -> None:
        ...

    @abstractmethod
    def on_message(self, topic: str, payload: bytes) -> None:
        ...

    @abstractmethod
    def on_disconnected(self, error: Optional[str] = None) -> None:
        """Connection closed — explicitly, by the remote end, or by an error."""
        ...


class MessagingTransport(ABC):

    @abstractmethod
    def set_listener(self, listener: TransportListener) -> None:
        """
        Replace the listener. An event is reported to the listener that was
        installed when the event happened, even if it is delivered later.
        """
        ...

    @abstractmethod
    def connect(self, identity: SessionIdentity, settings: BrokerSettings) -> None:
        """
        Start connecting. Returns immediately; the result arrives through
        on_connect_ack. May raise if the attempt cannot even be started.
        """
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close the session. Confirmed once with on_disconnected(None)."""
        ...

    @abstractmethod
    def subscribe(self, topic: str, qos: QoS = QoS.AT_LEAST_ONCE) -> None:
        ...

    @abstractmethod
    def publish(self, topic: str, payload: bytes, qos: QoS = QoS.AT_MOST_ONCE) -> int:
        """Queue a message. Returns the message id echoed by on_publish_ack."""
        ...


def topic_matches(topic_filter: str, topic: str) -> bool:
    """MQTT-style filter match with '+' (one level) and '#' (rest)."""
    filter_parts = topic_filter.split('/')
    topic_parts  = topic.split('/')
    for i, part in enumerate(filter_parts):
        if part == '#':
            return True
        if i >= len(topic_parts):
            return False
        if part != '+' and part != topic_parts[i]:
            return False
    return len(filter_parts) == len(topic_parts)
