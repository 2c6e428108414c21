"""
pinpoint/models/state.py
Shared state vocabulary. Every component speaks in these types.
Do not add logic here — data only.
"""

from dataclasses import dataclass
from enum import Enum


class AuthorizationState(str, Enum):
    """Location permission as reported by the OS."""
    UNDETERMINED      = 'undetermined'
    WHEN_IN_USE       = 'when_in_use'
    ALWAYS            = 'always'
    DENIED            = 'denied'
    SERVICES_DISABLED = 'services_disabled'


class AccessLevel(str, Enum):
    """UI-facing summary of AuthorizationState."""
    SERVICES_DISABLED = 'services_disabled'
    NOT_ALWAYS        = 'not_always'
    ALWAYS            = 'always'


class ActivityCategory(str, Enum):
    WALKING    = 'walking'
    RUNNING    = 'running'
    CYCLING    = 'cycling'
    AUTOMOTIVE = 'automotive'
    STATIONARY = 'stationary'
    UNKNOWN    = 'unknown'


class LifecyclePhase(str, Enum):
    FOREGROUND = 'foreground'
    INACTIVE   = 'inactive'
    BACKGROUND = 'background'


class ConnectionState(str, Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING   = 'connecting'
    CONNECTED    = 'connected'


@dataclass(frozen=True)
class PositionFix:
    """A single reported position."""
    latitude:   float
    longitude:  float
    timestamp:  float           # epoch seconds


@dataclass(frozen=True)
class MotionActivity:
    """Raw motion sample. Several flags may be set at once (e.g. stationary in a car)."""
    walking:    bool  = False
    running:    bool  = False
    cycling:    bool  = False
    automotive: bool  = False
    stationary: bool  = False
    unknown:    bool  = False
    confidence: str   = 'low'   # low / medium / high
    timestamp:  float = 0.0
