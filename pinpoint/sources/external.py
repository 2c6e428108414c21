"""
sources/external.py
Push-fed collaborators. A device bridge (HTTP API, replay trace, test)
pushes OS events in; these classes apply the same rules the OS would:
updates only flow between start/stop, and fixes closer than the distance
filter to the last delivered fix are suppressed.
"""

import logging
from typing import Optional

from pinpoint.geo import haversine_m, validate_coordinates
from pinpoint.models.state import AuthorizationState, MotionActivity, PositionFix
from pinpoint.sources.base import (
    ActivityHandler,
    AuthorizationHandler,
    FixHandler,
    MotionSource,
    PositionSource,
)

logger = logging.getLogger(__name__)


class ExternalPositionSource(PositionSource):

    def __init__(
        self,
        status:        AuthorizationState           = AuthorizationState.UNDETERMINED,
        prompt_answer: Optional[AuthorizationState] = None,
    ):
        """
        status:        authorization the "OS" reports at startup
        prompt_answer: if set, request_authorization() answers immediately
                       with this state (headless runs). Otherwise the answer
                       must be pushed with report_authorization().
        """
        self.status            = AuthorizationState(status)
        self.prompt_answer     = prompt_answer
        self.prompt_requests   = 0
        self.distance_filter_m = 0.0
        self.delivered         = 0
        self.suppressed        = 0
        self._fix_handler:  Optional[FixHandler]           = None
        self._auth_handler: Optional[AuthorizationHandler] = None
        self._last_delivered: Optional[PositionFix]        = None

    @property
    def is_updating(self) -> bool:
        return self._fix_handler is not None

    # ── PositionSource ───────────────────────────────────────
    def authorization_status(self) -> AuthorizationState:
        return self.status

    def set_authorization_handler(self, handler):
        self._auth_handler = handler

    def request_authorization(self) -> None:
        self.prompt_requests += 1
        logger.info("Location permission prompt requested")
        if self.prompt_answer is not None:
            self.report_authorization(self.prompt_answer)

    def start_updates(self, handler: FixHandler) -> None:
        self._fix_handler    = handler
        self._last_delivered = None

    def stop_updates(self) -> None:
        self._fix_handler = None

    def set_distance_filter(self, meters: float) -> None:
        self.distance_filter_m = float(meters)

    # ── PUSH SIDE ────────────────────────────────────────────
    def report_authorization(self, state) -> None:
        self.status = AuthorizationState(state)
        if self._auth_handler is not None:
            self._auth_handler(self.status)

    def report_services(self, enabled: bool, restored: AuthorizationState = AuthorizationState.UNDETERMINED) -> None:
        """Location services toggled at OS level. restored = authorization once re-enabled."""
        self.report_authorization(restored if enabled else AuthorizationState.SERVICES_DISABLED)

    def push_fix(self, fix: PositionFix) -> bool:
        """
        Deliver a raw fix. Returns False if updates are stopped or the fix
        falls inside the distance filter.
        """
        validate_coordinates(fix.latitude, fix.longitude)
        handler = self._fix_handler
        if handler is None:
            return False
        last = self._last_delivered
        if last is not None and self.distance_filter_m > 0:
            moved = haversine_m(last.latitude, last.longitude, fix.latitude, fix.longitude)
            if moved < self.distance_filter_m:
                self.suppressed += 1
                logger.debug(
                    f"Fix suppressed: moved {moved:.1f}m < filter {self.distance_filter_m:.0f}m"
                )
                return False
        self._last_delivered = fix
        self.delivered += 1
        handler(fix)
        return True


class ExternalMotionSource(MotionSource):

    def __init__(self, available: bool = True):
        self.available = available
        self._handler: Optional[ActivityHandler] = None

    @property
    def is_updating(self) -> bool:
        return self._handler is not None

    def is_available(self) -> bool:
        return self.available

    def start_updates(self, handler: ActivityHandler) -> None:
        self._handler = handler

    def stop_updates(self) -> None:
        self._handler = None

    def push_activity(self, activity: MotionActivity) -> bool:
        handler = self._handler
        if handler is None:
            return False
        handler(activity)
        return True
