"""
pinpoint/dispatch/scheduler.py
Single serial execution context for every callback and timer.

Two implementations:
  AsyncioScheduler — production, bound to a running asyncio loop.
  ManualScheduler  — virtual clock. Replay and tests drive time explicitly
                     with advance() so timer behaviour is deterministic.

Timers owned by components are RepeatingTimer / DeadlineTimer instances.
Starting either one always cancels the prior instance first, so there is at
most one outstanding timer of each kind per owner.
"""

import asyncio
import heapq
import itertools
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Scheduler(ABC):
    """
    All components schedule through this interface.
    Handles returned by call_soon / call_later expose cancel().
    """

    @abstractmethod
    def now(self) -> float:
        """Current time in epoch seconds (virtual for ManualScheduler)."""
        ...

    @abstractmethod
    def call_soon(self, callback: Callable[..., Any], *args: Any):
        """Run callback on the serial context at the next opportunity."""
        ...

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any):
        """Run callback after delay seconds. Returns a cancellable handle."""
        ...


# ── ASYNCIO ──────────────────────────────────────────────────

class AsyncioScheduler(Scheduler):

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return time.time()

    def call_soon(self, callback, *args):
        # Thread-safe: transport libraries deliver acks from their own threads
        return self.loop.call_soon_threadsafe(callback, *args)

    def call_later(self, delay, callback, *args):
        return self.loop.call_later(max(delay, 0.0), callback, *args)


# ── VIRTUAL CLOCK ────────────────────────────────────────────

class ManualHandle:
    """Cancellable entry in the ManualScheduler queue."""

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when       = when
        self._callback  = callback
        self._args      = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        self._callback(*self._args)


class ManualScheduler(Scheduler):
    """
    Virtual clock. Nothing runs until run_pending() / advance() is called.
    Callbacks due at the same instant run in scheduling order.
    """

    def __init__(self, start: float = 0.0):
        self._now   = float(start)
        self._queue: List[Tuple[float, int, ManualHandle]] = []
        self._seq   = itertools.count()

    def now(self) -> float:
        return self._now

    def call_soon(self, callback, *args):
        return self.call_later(0.0, callback, *args)

    def call_later(self, delay, callback, *args):
        handle = ManualHandle(self._now + max(float(delay), 0.0), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        return handle

    def run_pending(self) -> int:
        """Run everything due now, including callbacks scheduled while running."""
        return self.advance(0.0)

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing due callbacks in order. Returns count fired."""
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards: {seconds}")
        deadline = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= deadline:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled():
                continue
            self._now = max(self._now, when)
            handle._run()
            fired += 1
        self._now = deadline
        return fired

    def advance_to(self, timestamp: float) -> int:
        return self.advance(max(timestamp - self._now, 0.0))

    def pending(self) -> int:
        """Number of live (non-cancelled) scheduled callbacks."""
        return sum(1 for _, _, h in self._queue if not h.cancelled())


# ── TIMERS ───────────────────────────────────────────────────

class RepeatingTimer:
    """
    Cancellable repeating task bound to its owner's lifetime.
    The owner must call stop() on every teardown path.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval:  float,
        callback:  Callable[[], Any],
        name:      str = 'timer',
    ):
        if interval <= 0:
            raise ValueError(f"{name}: interval must be > 0, got {interval}")
        self.scheduler = scheduler
        self.interval  = float(interval)
        self.callback  = callback
        self.name      = name
        self.fired     = 0
        self._handle   = None
        self._active   = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self, fire_immediately: bool = False) -> None:
        self.stop()
        self._active = True
        logger.debug(f"{self.name}: started (every {self.interval}s)")
        if fire_immediately:
            self._fire()
        else:
            self._schedule()

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._active:
            logger.debug(f"{self.name}: stopped")
        self._active = False

    def _schedule(self) -> None:
        self._handle = self.scheduler.call_later(self.interval, self._fire)

    def _fire(self) -> None:
        if not self._active:
            return
        # Re-arm first so the callback may stop() the timer
        self._schedule()
        self.fired += 1
        try:
            self.callback()
        except Exception:
            logger.exception(f"{self.name}: callback failed")


class DeadlineTimer:
    """
    At most one outstanding deadline. arm() cancels and replaces any prior one.
    """

    def __init__(self, scheduler: Scheduler, name: str = 'deadline'):
        self.scheduler = scheduler
        self.name      = name
        self.opened_at: Optional[float] = None
        self.deadline:  Optional[float] = None
        self._handle   = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def window(self) -> Optional[Tuple[float, float]]:
        """(opened_at, deadline) of the outstanding deadline, or None."""
        if not self.armed:
            return None
        return (self.opened_at, self.deadline)

    def arm(self, delay: float, callback: Callable[[], Any]) -> None:
        self.cancel()
        self.opened_at = self.scheduler.now()
        self.deadline  = self.opened_at + delay
        self._handle   = self.scheduler.call_later(delay, self._expire, callback)

    def cancel(self) -> bool:
        """Cancel the outstanding deadline. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._clear()
        return True

    def _expire(self, callback: Callable[[], Any]) -> None:
        self._clear()
        callback()

    def _clear(self) -> None:
        self._handle   = None
        self.opened_at = None
        self.deadline  = None
