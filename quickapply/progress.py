"""Progress reporting for in-flight applications.

`ProgressReporter` turns raw counters into `ProgressState` snapshots and
pushes them into a `ProgressStore`. Observers subscribe to the store per
session and receive every snapshot in the order it was produced, plus
periodic heartbeats from `Heartbeat`.
"""
from __future__ import annotations

import math
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

from quickapply.log import get_logger
from quickapply.models import ProgressState

log = get_logger(__name__)

_END = object()


@dataclass(frozen=True)
class ProgressEvent:
    kind: str  # "progress" | "heartbeat"
    session_id: str
    state: ProgressState | None


class Subscription:
    """Ordered stream of events for one session.

    Iterating yields events until the session's terminal snapshot has been
    delivered, the subscription is cancelled or the session is evicted.
    """

    def __init__(self, store: "ProgressStore", session_id: str) -> None:
        self.store = store
        self.session_id = session_id
        self._queue: queue.Queue = queue.Queue()
        self._closed = False

    def _push(self, event: ProgressEvent) -> None:
        if not self._closed:
            self._queue.put(event)

    def _end(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put(_END)

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Next event, or None when the stream ended or `timeout` elapsed."""
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _END:
            # keep the sentinel for other readers of the same subscription
            self._queue.put(_END)
            return None
        return item

    def close(self) -> None:
        self.store.unsubscribe(self)

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ProgressStore:
    """Latest snapshot per session plus the live subscriber lists.

    Terminal snapshots stay readable for `retention_s` seconds after the
    session completes. A timer evicts them once the window closes; `sweep()`,
    `sessions()` and any access to the session also drop expired entries.
    """

    def __init__(self, retention_s: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.retention_s = retention_s
        self._clock = clock
        self._lock = threading.RLock()
        self._snapshots: dict[str, ProgressState] = {}
        self._expires: dict[str, float] = {}
        self._subscribers: dict[str, list[Subscription]] = {}
        self._timers: dict[str, threading.Timer] = {}

    def set(self, session_id: str, state: ProgressState) -> None:
        with self._lock:
            self._evict_if_expired(session_id)
            self._snapshots[session_id] = state
            if state.complete:
                self._expires[session_id] = self._clock() + self.retention_s
                self._schedule_eviction(session_id)
            else:
                self._expires.pop(session_id, None)
                self._cancel_timer(session_id)
            event = ProgressEvent("progress", session_id, state)
            for sub in list(self._subscribers.get(session_id, ())):
                sub._push(event)
                if state.complete:
                    sub._end()
            if state.complete:
                self._subscribers.pop(session_id, None)

    def get(self, session_id: str) -> ProgressState | None:
        with self._lock:
            self._evict_if_expired(session_id)
            return self._snapshots.get(session_id)

    def subscribe(self, session_id: str) -> Subscription:
        """New subscription; the latest snapshot (if any) is delivered first."""
        sub = Subscription(self, session_id)
        with self._lock:
            self._evict_if_expired(session_id)
            latest = self._snapshots.get(session_id)
            if latest is not None:
                sub._push(ProgressEvent("progress", session_id, latest))
                if latest.complete:
                    sub._end()
                    return sub
            self._subscribers.setdefault(session_id, []).append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.session_id)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    del self._subscribers[sub.session_id]
        sub._end()

    def heartbeat(self, session_id: str) -> bool:
        """Push a keep-alive to the session's subscribers. False once the session is over."""
        with self._lock:
            self._evict_if_expired(session_id)
            latest = self._snapshots.get(session_id)
            if latest is not None and latest.complete:
                return False
            event = ProgressEvent("heartbeat", session_id, latest)
            for sub in list(self._subscribers.get(session_id, ())):
                sub._push(event)
        return True

    def sweep(self) -> int:
        """Evict every expired terminal snapshot; returns how many were dropped."""
        with self._lock:
            expired = [sid for sid, at in self._expires.items() if self._clock() >= at]
            for sid in expired:
                self._evict(sid)
        return len(expired)

    def sessions(self) -> list[str]:
        with self._lock:
            self.sweep()
            return list(self._snapshots)

    def close(self) -> None:
        """Cancel pending eviction timers."""
        with self._lock:
            for sid in list(self._timers):
                self._cancel_timer(sid)

    def _schedule_eviction(self, session_id: str) -> None:
        self._cancel_timer(session_id)
        timer = threading.Timer(
            self.retention_s, self._expire, (session_id, self._expires[session_id])
        )
        timer.daemon = True
        self._timers[session_id] = timer
        timer.start()

    def _cancel_timer(self, session_id: str) -> None:
        timer = self._timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def _expire(self, session_id: str, at: float) -> None:
        with self._lock:
            # a newer snapshot for the session rescheduled or cleared this deadline
            if self._expires.get(session_id) == at:
                self._timers.pop(session_id, None)
                self._evict(session_id)

    def _evict_if_expired(self, session_id: str) -> None:
        at = self._expires.get(session_id)
        if at is not None and self._clock() >= at:
            self._evict(session_id)

    def _evict(self, session_id: str) -> None:
        self._snapshots.pop(session_id, None)
        self._expires.pop(session_id, None)
        self._cancel_timer(session_id)
        for sub in self._subscribers.pop(session_id, []):
            sub._end()
        log.debug("Evicted progress for %s", session_id)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


class ProgressReporter:
    """Builds progress snapshots for one submission session.

    Remembers the last non-empty detail tags and the last non-zero total so
    updates that omit them (the total is often unknown mid-step) keep
    showing the previous values.
    """

    def __init__(self, store: ProgressStore, session_id: str, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self.session_id = session_id
        self._clock = clock
        self._lock = threading.Lock()
        self._last_tags: tuple[str, ...] = ()
        self._last_total = 0
        self._last_percent = 0
        self._last_updated = 0.0
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def report(
        self,
        step: str,
        processed: int,
        total: int = 0,
        detail_tags: Sequence[str] = (),
        complete: bool = False,
    ) -> ProgressState | None:
        """Publish one snapshot. Returns None if the session already finished."""
        with self._lock:
            if self._finished:
                log.debug("Ignoring progress for finished session %s: %s", self.session_id, step)
                return None

            processed = max(0, int(processed))
            if detail_tags:
                self._last_tags = tuple(detail_tags)

            previous_total = self._last_total
            effective_total = total if total > 0 else self._last_total
            effective_total = max(effective_total, processed)
            self._last_total = effective_total

            percent = _round_half_up(processed / effective_total * 100) if effective_total else 0
            if percent < self._last_percent and effective_total <= previous_total:
                percent = self._last_percent
            self._last_percent = percent

            now = max(self._clock(), self._last_updated)
            self._last_updated = now
            self._finished = complete

            state = ProgressState(
                step=step,
                items_processed=processed,
                items_total=effective_total,
                percent=percent,
                detail_tags=self._last_tags,
                complete=complete,
                updated_at=now,
            )
            self.store.set(self.session_id, state)
        return state

    def finish(self, step: str, detail_tags: Sequence[str] = ()) -> ProgressState | None:
        """Terminal snapshot at the current counters."""
        latest = self.store.get(self.session_id)
        processed = latest.items_processed if latest else 0
        return self.report(step, processed, detail_tags=detail_tags, complete=True)


class Heartbeat:
    """Daemon thread sending keep-alives for one session at a fixed interval."""

    def __init__(self, store: ProgressStore, session_id: str, interval_s: float = 30.0) -> None:
        self.store = store
        self.session_id = session_id
        self.interval_s = interval_s
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"heartbeat-{session_id}", daemon=True)

    def start(self) -> "Heartbeat":
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self.interval_s + 1)

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            self.store.sweep()
            if not self.store.heartbeat(self.session_id):
                break

    def __enter__(self) -> "Heartbeat":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()


def watch_progress(
    store: ProgressStore,
    session_id: str,
    callback: Callable[[ProgressEvent], None],
) -> tuple[Subscription, threading.Thread]:
    """Feed a session's events to `callback` on a background thread."""
    sub = store.subscribe(session_id)

    def _pump() -> None:
        for event in sub:
            try:
                callback(event)
            except Exception as exc:
                log.warning("Progress observer for %s failed: %s", session_id, exc)

    thread = threading.Thread(target=_pump, name=f"progress-{session_id}", daemon=True)
    thread.start()
    return sub, thread


def describe(state: ProgressState) -> str:
    tags = ", ".join(state.detail_tags[:4])
    line = f"{state.step}  {state.items_processed}/{state.items_total} ({state.percent}%)"
    return f"{line}  [{tags}]" if tags else line
