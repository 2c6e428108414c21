"""
tests/test_scheduler.py
Virtual clock, timers and the serial event dispatcher.
All timing runs on ManualScheduler — nothing sleeps.
"""

import pytest

from pinpoint.dispatch import (
    DeadlineTimer,
    EventDispatcher,
    EventPriority,
    ManualScheduler,
    RepeatingTimer,
)


class TestManualScheduler:

    def test_nothing_runs_until_driven(self):
        s = ManualScheduler()
        calls = []
        s.call_soon(calls.append, 1)
        assert calls == []
        assert s.run_pending() == 1
        assert calls == [1]

    def test_call_later_fires_at_deadline(self):
        s = ManualScheduler(start=100.0)
        calls = []
        s.call_later(5.0, lambda: calls.append(s.now()))
        s.advance(4.0)
        assert calls == []
        s.advance(1.0)
        assert calls == [105.0]

    def test_same_instant_runs_in_scheduling_order(self):
        s = ManualScheduler()
        calls = []
        for i in range(5):
            s.call_later(1.0, calls.append, i)
        s.advance(1.0)
        assert calls == [0, 1, 2, 3, 4]

    def test_cancelled_handle_never_fires(self):
        s = ManualScheduler()
        calls = []
        handle = s.call_later(1.0, calls.append, 'x')
        handle.cancel()
        assert s.pending() == 0
        s.advance(2.0)
        assert calls == []

    def test_callbacks_scheduled_while_running_are_included(self):
        s = ManualScheduler()
        calls = []
        s.call_soon(lambda: s.call_soon(calls.append, 'nested'))
        s.run_pending()
        assert calls == ['nested']

    def test_advance_to_and_backwards(self):
        s = ManualScheduler(start=10.0)
        s.advance_to(15.0)
        assert s.now() == 15.0
        s.advance_to(12.0)  # never moves backwards
        assert s.now() == 15.0
        with pytest.raises(ValueError):
            s.advance(-1.0)


class TestRepeatingTimer:

    def test_fire_immediately_then_every_interval(self):
        s = ManualScheduler()
        times = []
        t = RepeatingTimer(s, 5.0, lambda: times.append(s.now()), name='hb')
        t.start(fire_immediately=True)
        s.advance(12.0)
        assert times == [0.0, 5.0, 10.0]
        assert t.fired == 3

    def test_stop_cancels_pending_fire(self):
        s = ManualScheduler()
        times = []
        t = RepeatingTimer(s, 5.0, lambda: times.append(s.now()))
        t.start()
        s.advance(5.0)
        t.stop()
        s.advance(20.0)
        assert times == [5.0]
        assert not t.active
        assert s.pending() == 0

    def test_restart_leaves_single_instance(self):
        s = ManualScheduler()
        times = []
        t = RepeatingTimer(s, 5.0, lambda: times.append(s.now()))
        t.start()
        s.advance(2.0)
        t.start()
        s.advance(10.0)
        assert times == [7.0, 12.0]
        assert s.pending() == 1

    def test_callback_may_stop_its_own_timer(self):
        s = ManualScheduler()
        holder = {}

        def once():
            holder['t'].stop()

        holder['t'] = RepeatingTimer(s, 1.0, once)
        holder['t'].start(fire_immediately=True)
        s.advance(5.0)
        assert holder['t'].fired == 1
        assert s.pending() == 0

    def test_failing_callback_keeps_timer_running(self):
        s = ManualScheduler()
        t = RepeatingTimer(s, 1.0, lambda: 1 / 0)
        t.start()
        s.advance(3.0)
        assert t.fired == 3
        assert t.active

    def test_non_positive_interval_rejected(self):
        with pytest.raises(ValueError):
            RepeatingTimer(ManualScheduler(), 0, lambda: None)


class TestDeadlineTimer:

    def test_window_reports_open_and_deadline(self):
        s = ManualScheduler(start=5.0)
        d = DeadlineTimer(s)
        d.arm(10.0, lambda: None)
        assert d.window == (5.0, 15.0)

    def test_rearm_replaces_outstanding_deadline(self):
        s = ManualScheduler()
        fired = []
        d = DeadlineTimer(s)
        d.arm(10.0, lambda: fired.append(s.now()))
        s.advance(4.0)
        d.arm(10.0, lambda: fired.append(s.now()))
        s.advance(10.0)
        assert fired == [14.0]
        assert s.pending() == 0

    def test_expiry_clears_window(self):
        s = ManualScheduler()
        d = DeadlineTimer(s)
        d.arm(1.0, lambda: None)
        s.advance(1.0)
        assert not d.armed
        assert d.window is None

    def test_cancel_reports_whether_pending(self):
        s = ManualScheduler()
        d = DeadlineTimer(s)
        assert d.cancel() is False
        d.arm(1.0, lambda: None)
        assert d.cancel() is True
        assert s.pending() == 0


class TestEventDispatcher:

    def test_same_tick_ordered_by_priority_then_fifo(self):
        s = ManualScheduler()
        d = EventDispatcher(s)
        seen = []
        d.post(EventPriority.LOCATION,      seen.append, 'fix-1')
        d.post(EventPriority.LIFECYCLE,     seen.append, 'background')
        d.post(EventPriority.LOCATION,      seen.append, 'fix-2')
        d.post(EventPriority.AUTHORIZATION, seen.append, 'always')
        s.run_pending()
        assert seen == ['always', 'background', 'fix-1', 'fix-2']

    def test_later_ticks_follow_posting_time(self):
        s = ManualScheduler()
        d = EventDispatcher(s)
        seen = []
        d.post(EventPriority.LOCATION, seen.append, 'fix')
        s.run_pending()
        d.post(EventPriority.AUTHORIZATION, seen.append, 'auth')
        s.run_pending()
        assert seen == ['fix', 'auth']

    def test_failing_handler_does_not_block_next_event(self):
        s = ManualScheduler()
        d = EventDispatcher(s)
        seen = []

        def boom():
            raise RuntimeError("handler bug")

        d.post(EventPriority.ACTIVITY, boom)
        d.post(EventPriority.LOCATION, seen.append, 'fix')
        s.run_pending()
        assert seen == ['fix']
        assert d.failed == 1
        assert d.delivered == 1

    def test_events_posted_by_handlers_run_in_a_later_tick(self):
        s = ManualScheduler()
        d = EventDispatcher(s)
        seen = []

        def first():
            seen.append('first')
            d.post(EventPriority.AUTHORIZATION, seen.append, 'follow-up')

        d.post(EventPriority.ACTIVITY, first)
        d.post(EventPriority.LOCATION, seen.append, 'fix')
        s.run_pending()
        assert seen == ['first', 'fix', 'follow-up']

    def test_close_discards_queued_and_later_events(self):
        s = ManualScheduler()
        d = EventDispatcher(s)
        seen = []
        d.post(EventPriority.LIFECYCLE, seen.append, 'foreground')
        s.run_pending()
        d.post(EventPriority.AUTHORIZATION, seen.append, 'always')
        d.close()
        d.post(EventPriority.LOCATION, seen.append, 'fix')
        s.run_pending()
        assert seen == ['foreground']
        assert d.dropped == 2

    def test_close_from_a_handler_drops_rest_of_tick(self):
        s = ManualScheduler()
        d = EventDispatcher(s)
        seen = []
        d.post(EventPriority.LOCATION, seen.append, 'fix')
        d.post(EventPriority.AUTHORIZATION, d.close)
        d.post(EventPriority.LIFECYCLE, seen.append, 'foreground')
        s.run_pending()
        assert seen == []
        assert d.closed
