"""
pinpoint/lifecycle.py
Lifecycle Observer — holds the current app execution phase as delivered by
the OS and notifies listeners with (previous, current).
"""

import logging
from typing import Callable, List

from pinpoint.models.state import LifecyclePhase

logger = logging.getLogger(__name__)

PhaseListener = Callable[[LifecyclePhase, LifecyclePhase], None]

_PHASE_MESSAGES = {
    LifecyclePhase.FOREGROUND: "App did become active",
    LifecyclePhase.INACTIVE:   "App will resign active",
    LifecyclePhase.BACKGROUND: "App did enter background",
}


class LifecycleObserver:

    def __init__(self, initial: LifecyclePhase = LifecyclePhase.INACTIVE):
        self.phase = LifecyclePhase(initial)
        self._listeners: List[PhaseListener] = []

    @property
    def is_background(self) -> bool:
        return self.phase == LifecyclePhase.BACKGROUND

    def add_listener(self, listener: PhaseListener) -> None:
        self._listeners.append(listener)

    def on_phase_changed(self, phase) -> None:
        phase    = LifecyclePhase(phase)
        previous = self.phase
        if phase == previous:
            logger.debug(f"Lifecycle phase unchanged: {phase.value}")
            return
        self.phase = phase
        logger.info(f"{_PHASE_MESSAGES[phase]} ({previous.value} → {phase.value})")
        for listener in list(self._listeners):
            listener(previous, phase)
