"""
pinpoint/connectivity.py
Connectivity Policy — decides when a messaging session should exist.

LIFECYCLE BASELINE:
  Foreground  → cancel any reconnect window, connect, stay connected
  Inactive    → cancel any reconnect window, leave the session as it is
  Background  → cancel any reconnect window, disconnect immediately

BOUNDED RECONNECT (overrides the baseline while in Background):
  every accepted fix while Background
    1. connect if Disconnected (no-op while Connecting / Connected)
    2. (re)arm the teardown deadline window_sec out — exactly one outstanding
    3. relay the fix through the session
  deadline expiry with no renewal → disconnect
"""

import logging
from typing import Optional, Tuple

from pinpoint.dispatch.scheduler import DeadlineTimer, Scheduler
from pinpoint.lifecycle import LifecycleObserver
from pinpoint.messaging.session import MessagingSessionManager
from pinpoint.models.state import ConnectionState, LifecyclePhase, PositionFix

logger = logging.getLogger(__name__)

RECONNECT_WINDOW_SEC = 10.0


class ConnectivityPolicy:

    def __init__(
        self,
        session:    MessagingSessionManager,
        lifecycle:  LifecycleObserver,
        scheduler:  Scheduler,
        window_sec: float = RECONNECT_WINDOW_SEC,
    ):
        self.session         = session
        self.lifecycle       = lifecycle
        self.window_sec      = window_sec
        self.windows_opened  = 0
        self.windows_expired = 0
        self._window         = DeadlineTimer(scheduler, name='reconnect-window')

    @property
    def window(self) -> Optional[Tuple[float, float]]:
        """(opened_at, deadline) of the outstanding reconnect window, or None."""
        return self._window.window

    # ── EVENTS ───────────────────────────────────────────────

    def on_lifecycle_changed(self, previous: LifecyclePhase, phase: LifecyclePhase) -> None:
        if self._window.cancel():
            logger.debug(f"Reconnect window cancelled by {phase.value} transition")

        if phase == LifecyclePhase.FOREGROUND:
            self.session.connect()
        elif phase == LifecyclePhase.BACKGROUND:
            self.session.disconnect()

    def on_fix(self, fix: PositionFix) -> None:
        if not self.lifecycle.is_background:
            return

        if self.session.state == ConnectionState.DISCONNECTED:
            self.session.connect()

        renewing = self._window.armed
        self._window.arm(self.window_sec, self._on_window_expired)
        if renewing:
            logger.debug(f"Reconnect window extended to {self._window.deadline:.1f}")
        else:
            self.windows_opened += 1
            logger.info(f"Background fix — reconnect window open for {self.window_sec:.0f}s")

        self.session.relay_position(fix)

    def shutdown(self) -> None:
        self._window.cancel()

    # ── INTERNAL ─────────────────────────────────────────────

    def _on_window_expired(self) -> None:
        self.windows_expired += 1
        logger.info("Reconnect window expired — closing session")
        self.session.disconnect()
