"""
pinpoint/dispatch — serial scheduling and event intake.
"""

from pinpoint.dispatch.dispatcher import EventDispatcher, EventPriority
from pinpoint.dispatch.scheduler import (
    AsyncioScheduler,
    DeadlineTimer,
    ManualScheduler,
    RepeatingTimer,
    Scheduler,
)

__all__ = [
    "AsyncioScheduler",
    "DeadlineTimer",
    "EventDispatcher",
    "EventPriority",
    "ManualScheduler",
    "RepeatingTimer",
    "Scheduler",
]
