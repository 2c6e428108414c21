"""
pinpoint/models — shared enums and dataclasses.
"""

from pinpoint.models.state import (
    AccessLevel,
    ActivityCategory,
    AuthorizationState,
    ConnectionState,
    LifecyclePhase,
    MotionActivity,
    PositionFix,
)

__all__ = [
    "AccessLevel",
    "ActivityCategory",
    "AuthorizationState",
    "ConnectionState",
    "LifecyclePhase",
    "MotionActivity",
    "PositionFix",
]
