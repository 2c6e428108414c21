"""
pinpoint/dispatch/dispatcher.py
Serial event intake. One post() per OS / transport event; handlers run one
at a time on the scheduler's context, never concurrently.

TICK ORDERING:
  Events posted before the dispatcher drains form one tick. Within a tick,
  handlers run by EventPriority, then in posting order. Lifecycle events
  therefore apply before a location fix that arrived in the same tick, so a
  Background transition followed by a racing fix always ends with the
  bounded reconnect window open rather than a stray disconnect.

CLOSING:
  close() discards everything still queued, including the rest of a tick
  being drained. Nothing posted afterwards runs.
"""

import heapq
import itertools
import logging
from enum import IntEnum
from typing import Any, Callable, List, Tuple

from pinpoint.dispatch.scheduler import Scheduler

logger = logging.getLogger(__name__)


class EventPriority(IntEnum):
    AUTHORIZATION = 0
    LIFECYCLE     = 1
    ACTIVITY      = 2
    TRANSPORT     = 3
    LOCATION      = 4


class EventDispatcher:

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self.delivered = 0
        self.failed    = 0
        self.dropped   = 0
        self.closed    = False
        self._tick: List[Tuple[int, int, str, Callable[..., Any], Tuple[Any, ...]]] = []
        self._seq      = itertools.count()
        self._drain_scheduled = False

    def post(
        self,
        priority: EventPriority,
        handler:  Callable[..., Any],
        *args:    Any,
        name:     str = '',
    ) -> None:
        """Queue handler(*args). Safe to call from any thread."""
        self.scheduler.call_soon(self._enqueue, int(priority), name, handler, args)

    def close(self) -> None:
        """Stop dispatching. Must run on the scheduler's context."""
        if self.closed:
            return
        self.closed = True
        self._discard(self._tick)
        self._tick = []

    def _enqueue(self, priority: int, name: str, handler, args) -> None:
        if self.closed:
            self.dropped += 1
            logger.debug(f"Dropping {name or getattr(handler, '__name__', 'event')} — dispatcher closed")
            return
        heapq.heappush(self._tick, (priority, next(self._seq), name, handler, args))
        if not self._drain_scheduled:
            self._drain_scheduled = True
            self.scheduler.call_soon(self._drain)

    def _drain(self) -> None:
        tick, self._tick = self._tick, []
        self._drain_scheduled = False
        while tick:
            if self.closed:
                self._discard(tick)
                return
            priority, _, name, handler, args = heapq.heappop(tick)
            try:
                handler(*args)
                self.delivered += 1
            except Exception:
                self.failed += 1
                logger.exception(
                    f"Handler for {name or getattr(handler, '__name__', 'event')} failed "
                    f"(priority={EventPriority(priority).name})"
                )

    def _discard(self, tick) -> None:
        if tick:
            self.dropped += len(tick)
            logger.debug(f"Discarded {len(tick)} queued event(s) on close")
        tick.clear()
