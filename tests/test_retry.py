"""Tests for the retry decorator."""

from __future__ import annotations

import threading

import pytest

from quickapply.retry import backoff_delay, retry


class TestRetry:
    def test_succeeds_after_failures(self):
        sleeps: list[float] = []
        calls = {"n": 0}

        @retry(max_attempts=3, base_delay=1.0, jitter=False, sleep=sleeps.append)
        def flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise ValueError("not yet")
            return "ok"

        assert flaky() == "ok"
        assert sleeps == [1.0, 2.0]

    def test_raises_after_max_attempts(self):
        @retry(max_attempts=2, jitter=False, sleep=lambda s: None)
        def always():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            always()

    def test_non_retryable_propagates_immediately(self):
        calls = {"n": 0}

        @retry(max_attempts=5, retryable=(ValueError,), sleep=lambda s: None)
        def wrong():
            calls["n"] += 1
            raise KeyError("x")

        with pytest.raises(KeyError):
            wrong()
        assert calls["n"] == 1

    def test_cancel_stops_retrying(self):
        cancel = threading.Event()
        cancel.set()
        calls = {"n": 0}

        @retry(max_attempts=5, cancel=cancel, sleep=lambda s: None)
        def work():
            calls["n"] += 1
            raise ValueError("x")

        with pytest.raises(ValueError):
            work()
        assert calls["n"] == 1


class TestBackoff:
    def test_capped(self):
        assert backoff_delay(10, base_delay=1.0, max_delay=5.0, jitter=False) == 5.0

    def test_jitter_range(self):
        for _ in range(20):
            assert 0.5 <= backoff_delay(1, base_delay=1.0) <= 1.5
