"""
pinpoint/authorization.py
Authorization State Machine.

  Undetermined → {WhenInUse, Always, Denied}
  WhenInUse ↔ Always              (user upgrade / downgrade)
  any → Denied / ServicesDisabled

The OS is authoritative: whatever state it reports is applied. Listeners
receive (previous, current) after the state is updated; the coordinator
uses entry into / exit from a granted state to arm / disarm the pipeline.
"""

import logging
from typing import Callable, List

from pinpoint.models.state import AccessLevel, AuthorizationState
from pinpoint.sources.base import PositionSource

logger = logging.getLogger(__name__)

GRANTED_STATES = frozenset({AuthorizationState.WHEN_IN_USE, AuthorizationState.ALWAYS})

TransitionListener = Callable[[AuthorizationState, AuthorizationState], None]


def access_level_for(state: AuthorizationState) -> AccessLevel:
    if state == AuthorizationState.SERVICES_DISABLED:
        return AccessLevel.SERVICES_DISABLED
    if state == AuthorizationState.ALWAYS:
        return AccessLevel.ALWAYS
    return AccessLevel.NOT_ALWAYS


def is_granted(state: AuthorizationState) -> bool:
    return state in GRANTED_STATES


class AuthorizationStateMachine:

    def __init__(
        self,
        source:  PositionSource,
        initial: AuthorizationState = AuthorizationState.UNDETERMINED,
    ):
        self.source = source
        self.state  = AuthorizationState(initial)
        self._listeners: List[TransitionListener] = []

    @property
    def access_level(self) -> AccessLevel:
        return access_level_for(self.state)

    @property
    def is_granted(self) -> bool:
        return is_granted(self.state)

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def request_permission(self) -> bool:
        """
        Trigger the OS prompt if the user has not been asked yet.
        Returns True if a prompt was requested, False (no-op) otherwise.
        """
        if self.state != AuthorizationState.UNDETERMINED:
            logger.debug(f"requestPermission ignored — state already {self.state.value}")
            return False
        logger.info("Requesting location permission")
        self.source.request_authorization()
        return True

    def on_authorization_changed(self, new_state) -> None:
        new_state = AuthorizationState(new_state)
        previous  = self.state
        if new_state == previous:
            logger.debug(f"Authorization unchanged: {new_state.value}")
            return

        self.state = new_state
        logger.info(
            f"Authorization {previous.value} → {new_state.value} "
            f"(access level: {self.access_level.value})"
        )
        if new_state == AuthorizationState.DENIED:
            logger.warning("Location permission denied — location updates disabled")
        elif new_state == AuthorizationState.SERVICES_DISABLED:
            logger.warning("Location services disabled at OS level — location updates disabled")

        for listener in list(self._listeners):
            listener(previous, new_state)
