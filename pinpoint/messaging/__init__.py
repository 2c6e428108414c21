"""
pinpoint/messaging — broker transport contract and session management.
"""

from pinpoint.messaging.base import (
    BrokerSettings,
    MessagingTransport,
    QoS,
    SessionIdentity,
    TransportListener,
    topic_matches,
)
from pinpoint.messaging.loopback import LoopbackTransport
from pinpoint.messaging.session import MessagingSessionManager

__all__ = [
    "BrokerSettings",
    "LoopbackTransport",
    "MessagingSessionManager",
    "MessagingTransport",
    "QoS",
    "SessionIdentity",
    "TransportListener",
    "topic_matches",
]
