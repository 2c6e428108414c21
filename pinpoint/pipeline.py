"""
pinpoint/pipeline.py
Location Pipeline.

  on_fix_received(fix)  accepted only while running AND authorized:
                          current fix ← fix
                          durable last-known fix ← fix (overwrite)
                          fan-out to subscribers (at most once, no replay)
  current_fix           in-memory, empty once stopped
  last_known_fix()      read from the durable store, survives restarts
  start() / stop()      bracket the source subscription and the periodic
                        debug logger; stop() is idempotent and guarantees
                        no further fix is accepted or persisted
"""

import logging
from typing import Callable, List, Optional, Sequence

from pinpoint.authorization import AuthorizationStateMachine
from pinpoint.dispatch.scheduler import RepeatingTimer, Scheduler
from pinpoint.errors import PermissionDenied, ServiceUnavailable
from pinpoint.models.state import AccessLevel, PositionFix
from pinpoint.sources.base import FixHandler, PositionSource
from pinpoint.store.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

FixSubscriber = Callable[[PositionFix], None]


class LocationPipeline:

    def __init__(
        self,
        source:             PositionSource,
        authorization:      AuthorizationStateMachine,
        store:              SqliteKeyValueStore,
        scheduler:          Scheduler,
        intake:             Optional[FixHandler] = None,
        debug_log_interval: float = 2.5,
    ):
        self.source        = source
        self.authorization = authorization
        self.store         = store
        self.current_fix: Optional[PositionFix] = None
        self.is_running    = False
        self.accepted      = 0
        self.rejected      = 0
        self._intake       = intake
        self._subscribers: List[FixSubscriber] = []
        self._debug_timer  = None
        if debug_log_interval and debug_log_interval > 0:
            self._debug_timer = RepeatingTimer(
                scheduler, debug_log_interval, self._log_current_fix, name='location-debug-log'
            )

    # ── SUBSCRIPTION ─────────────────────────────────────────

    def subscribe(self, subscriber: FixSubscriber) -> Callable[[], None]:
        """Register for accepted fixes. Returns an unsubscribe function."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
        return unsubscribe

    # ── START / STOP ─────────────────────────────────────────

    def start(self) -> None:
        if self.authorization.access_level == AccessLevel.SERVICES_DISABLED:
            raise ServiceUnavailable("location services are disabled")
        if not self.authorization.is_granted:
            raise PermissionDenied(
                f"location permission is '{self.authorization.state.value}'"
            )
        if self.is_running:
            return
        self.source.start_updates(self._intake or self.on_fix_received)
        self.is_running = True
        if self._debug_timer is not None:
            self._debug_timer.start()
        logger.info("Location updates started")

    def stop(self) -> None:
        if self._debug_timer is not None:
            self._debug_timer.stop()
        if not self.is_running:
            return
        self.is_running  = False
        self.current_fix = None
        self.source.stop_updates()
        logger.info("Location updates stopped")

    # ── FIX INTAKE ───────────────────────────────────────────

    def on_fix_received(self, fix: PositionFix) -> bool:
        if not self.is_running or not self.authorization.is_granted:
            self.rejected += 1
            logger.debug(
                f"Fix rejected (running={self.is_running}, "
                f"authorization={self.authorization.state.value})"
            )
            return False

        self.current_fix = fix
        self.accepted += 1
        self.store.save_last_known_fix(fix)
        logger.debug(f"Fix accepted: ({fix.latitude}, {fix.longitude}) @ {fix.timestamp}")

        for subscriber in list(self._subscribers):
            try:
                subscriber(fix)
            except Exception:
                logger.exception("Fix subscriber failed")
        return True

    def on_fixes_received(self, fixes: Sequence[PositionFix]) -> bool:
        """Batched delivery — only the most recent fix of the batch counts."""
        if not fixes:
            return False
        return self.on_fix_received(fixes[-1])

    def last_known_fix(self) -> Optional[PositionFix]:
        return self.store.load_last_known_fix()

    # ── DEBUG LOGGING ────────────────────────────────────────

    def _log_current_fix(self) -> None:
        fix = self.current_fix
        if fix is None or not self.is_running or not self.authorization.is_granted:
            return
        logger.debug(f"Current location: (lat: {fix.latitude}, lon: {fix.longitude})")
