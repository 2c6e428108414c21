"""
pinpoint/sources — OS collaborator contracts and push-fed implementations.
"""

from pinpoint.sources.base import MotionSource, PositionSource
from pinpoint.sources.external import ExternalMotionSource, ExternalPositionSource

__all__ = [
    "ExternalMotionSource",
    "ExternalPositionSource",
    "MotionSource",
    "PositionSource",
]
