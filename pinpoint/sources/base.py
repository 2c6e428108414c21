"""
sources/base.py
Contracts for the OS-side collaborators.
To bridge a new platform: subclass PositionSource / MotionSource.

Implementations may invoke the registered handlers from any thread; the
coordinator hands them intake functions that funnel every event onto the
serial dispatcher.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from pinpoint.models.state import AuthorizationState, MotionActivity, PositionFix

FixHandler           = Callable[[PositionFix], None]
AuthorizationHandler = Callable[[AuthorizationState], None]
ActivityHandler      = Callable[[MotionActivity], None]


class PositionSource(ABC):
    """
    Position provider: permission prompts, authorization-change
    notifications, start/stop of updates and the minimum-movement filter.
    """

    @abstractmethod
    def authorization_status(self) -> AuthorizationState:
        """Current OS authorization, read synchronously at startup."""
        ...

    @abstractmethod
    def set_authorization_handler(self, handler: Optional[AuthorizationHandler]) -> None:
        ...

    @abstractmethod
    def request_authorization(self) -> None:
        """
        Show the OS permission prompt.
        The answer arrives later through the authorization handler.
        """
        ...

    @abstractmethod
    def start_updates(self, handler: FixHandler) -> None:
        ...

    @abstractmethod
    def stop_updates(self) -> None:
        """After this returns the handler registered by start_updates is never called."""
        ...

    @abstractmethod
    def set_distance_filter(self, meters: float) -> None:
        """Minimum movement between two reported fixes."""
        ...


class MotionSource(ABC):
    """Motion-activity classifier provided by the OS."""

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def start_updates(self, handler: ActivityHandler) -> None:
        ...

    @abstractmethod
    def stop_updates(self) -> None:
        ...
