"""Tests for progress snapshots, ordered delivery, retention and heartbeats."""

from __future__ import annotations

import threading
import time

import pytest

from quickapply.models import ProgressState
from quickapply.progress import Heartbeat, ProgressReporter, ProgressStore, watch_progress


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> ProgressStore:
    return ProgressStore(retention_s=60.0, clock=clock)


# ---------------------------------------------------------------------------
# 1. Percentages and remembered values
# ---------------------------------------------------------------------------


class TestReporter:
    def test_percent_never_drops_without_total_growth(self, store):
        r = ProgressReporter(store, "s1")
        assert r.report("step-1", 3, 5).percent == 60
        assert r.report("step-1", 1, 3).percent == 60
        assert r.report("step-1", 1, 8).percent == 13

    def test_total_revised_upward_may_lower_percent(self, store):
        """3 of 5 is 60%; discovering 10 items in total drops it to 30%."""
        r = ProgressReporter(store, "s1")
        assert r.report("step-1", 3, 5).percent == 60
        state = r.report("step-2", 3, 10)
        assert state.percent == 30
        assert state.items_total == 10

    def test_unknown_total_keeps_last_total(self, store):
        r = ProgressReporter(store, "s1")
        r.report("step-1", 2, 8)
        state = r.report("step-1", 4)
        assert state.items_total == 8
        assert state.percent == 50

    def test_total_never_below_processed(self, store):
        r = ProgressReporter(store, "s1")
        state = r.report("step-1", 4, 2)
        assert state.items_total == 4
        assert state.percent == 100

    def test_empty_tags_keep_previous(self, store):
        r = ProgressReporter(store, "s1")
        r.report("step-1", 1, 4, detail_tags=("Email", "Phone"))
        assert r.report("step-1", 2).detail_tags == ("Email", "Phone")

    def test_zero_total_is_zero_percent(self, store):
        assert ProgressReporter(store, "s1").report("discovering", 0).percent == 0

    def test_reports_after_terminal_are_ignored(self, store):
        r = ProgressReporter(store, "s1")
        r.report("completed", 5, 5, complete=True)
        assert r.report("step-9", 1, 5) is None
        assert store.get("s1").step == "completed"

    def test_timestamps_monotonic(self, store):
        times = iter([50.0, 40.0])
        r = ProgressReporter(store, "s1", clock=lambda: next(times))
        first = r.report("a", 1, 2)
        second = r.report("b", 2, 2)
        assert second.updated_at >= first.updated_at

    def test_finish_keeps_counters(self, store):
        r = ProgressReporter(store, "s1")
        r.report("step-2", 3, 6)
        final = r.finish("failed", ("failed", "step-2"))
        assert final.complete
        assert final.items_processed == 3
        assert final.detail_tags == ("failed", "step-2")


# ---------------------------------------------------------------------------
# 2. Store and subscriptions
# ---------------------------------------------------------------------------


class TestStore:
    def test_get_unknown_session(self, store):
        assert store.get("nope") is None

    def test_ordered_delivery(self, store):
        sub = store.subscribe("s1")
        r = ProgressReporter(store, "s1")
        for i in range(1, 6):
            r.report(f"step-{i}", i, 5, complete=(i == 5))
        steps = [event.state.step for event in sub]
        assert steps == ["step-1", "step-2", "step-3", "step-4", "step-5"]

    def test_late_subscriber_gets_snapshot_first(self, store):
        r = ProgressReporter(store, "s1")
        r.report("step-1", 1, 4)
        r.report("step-2", 2, 4)
        sub = store.subscribe("s1")
        first = sub.get(timeout=1)
        assert first.state.step == "step-2"
        r.report("step-3", 3, 4)
        assert sub.get(timeout=1).state.step == "step-3"

    def test_subscriber_after_completion_sees_final_state_then_end(self, store):
        ProgressReporter(store, "s1").report("completed", 2, 2, complete=True)
        events = list(store.subscribe("s1"))
        assert len(events) == 1
        assert events[0].state.complete

    def test_unsubscribe_stops_delivery(self, store):
        sub = store.subscribe("s1")
        sub.close()
        ProgressReporter(store, "s1").report("step-1", 1, 2)
        assert sub.get(timeout=0.05) is None
        assert store.get("s1").step == "step-1"

    def test_completed_state_retained_then_evicted(self, store, clock):
        ProgressReporter(store, "s1").report("completed", 1, 1, complete=True)
        clock.now += 59
        assert store.get("s1") is not None
        clock.now += 2
        assert store.get("s1") is None

    def test_sweep(self, store, clock):
        ProgressReporter(store, "done").report("completed", 1, 1, complete=True)
        ProgressReporter(store, "live").report("step-1", 0, 1)
        clock.now += 61
        assert store.sweep() == 1
        assert store.sessions() == ["live"]

    def test_sessions_drops_expired_without_touching_them(self, store, clock):
        for sid in ("0", "1", "2"):
            ProgressReporter(store, sid).report("completed", 1, 1, complete=True)
        ProgressReporter(store, "live").report("step-1", 0, 2)
        clock.now += 10_000
        assert store.sessions() == ["live"]

    def test_completed_state_evicted_by_timer(self, clock):
        store = ProgressStore(retention_s=0.05, clock=clock)
        sub = store.subscribe("s1")
        ProgressReporter(store, "s1").report("completed", 1, 1, complete=True)
        assert store.sessions() == ["s1"]
        deadline = time.monotonic() + 2
        while store.sessions() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert store.sessions() == []
        assert [e.state.step for e in sub] == ["completed"]

    def test_restarted_session_keeps_snapshot_past_old_deadline(self, clock):
        store = ProgressStore(retention_s=0.05, clock=clock)
        ProgressReporter(store, "s1").report("completed", 1, 1, complete=True)
        ProgressReporter(store, "s1").report("step-1", 0, 2)
        time.sleep(0.2)
        assert store.get("s1").step == "step-1"
        store.close()

    def test_in_progress_state_never_evicted(self, store, clock):
        ProgressReporter(store, "s1").report("step-1", 0, 3)
        clock.now += 10_000
        assert store.get("s1") is not None

    def test_heartbeat_events(self, store):
        ProgressReporter(store, "s1").report("step-1", 1, 3)
        sub = store.subscribe("s1")
        sub.get(timeout=1)
        assert store.heartbeat("s1") is True
        event = sub.get(timeout=1)
        assert event.kind == "heartbeat"
        assert event.state.step == "step-1"

    def test_no_heartbeat_after_completion(self, store):
        ProgressReporter(store, "s1").report("completed", 1, 1, complete=True)
        assert store.heartbeat("s1") is False


class TestThreads:
    def test_heartbeat_thread_pushes_keepalives(self):
        store = ProgressStore()
        ProgressReporter(store, "s1").report("step-1", 0, 2)
        sub = store.subscribe("s1")
        sub.get(timeout=1)
        with Heartbeat(store, "s1", interval_s=0.01):
            event = sub.get(timeout=2)
        assert event is not None
        assert event.kind == "heartbeat"

    def test_watch_progress_calls_back_until_complete(self):
        store = ProgressStore()
        seen: list[ProgressState] = []
        done = threading.Event()

        def on_event(event):
            seen.append(event.state)
            if event.state.complete:
                done.set()

        _, thread = watch_progress(store, "s1", on_event)
        r = ProgressReporter(store, "s1")
        r.report("step-1", 1, 2)
        r.report("completed", 2, 2, complete=True)
        assert done.wait(2)
        thread.join(timeout=2)
        assert [s.step for s in seen] == ["step-1", "completed"]
