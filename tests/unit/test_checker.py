"""
Unit tests for HealthChecker.
"""

import queue
import threading
import time

from healthgate.health.checker import HealthChecker
from healthgate.health.probe import HealthStatus


class ScriptedProbe:
    """Returns a fixed sequence of results, then repeats the last one."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []
        self.closed = False
        self.called = threading.Event()

    def check(self) -> HealthStatus:
        self.calls.append(time.monotonic())
        self.called.set()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return HealthStatus(healthy=result)

    def close(self):
        self.closed = True


class TestHealthChecker:
    """Tests for the polling loop."""

    def test_first_check_is_immediate(self):
        """No delay before the first check, even with a long interval."""
        probe = ScriptedProbe([True])
        checker = HealthChecker(probe, interval=60.0)
        started = time.monotonic()
        checker.start()
        try:
            assert checker.events.get(timeout=5.0) is True
            assert time.monotonic() - started < 2.0
        finally:
            checker.close()
            assert checker.join(timeout=5.0)

    def test_events_follow_probe_results(self):
        """Each check publishes one boolean, in order."""
        probe = ScriptedProbe([True, False, True])
        checker = HealthChecker(probe, interval=0.01).start()
        try:
            got = [checker.events.get(timeout=5.0) for _ in range(3)]
        finally:
            checker.close()
            checker.join(timeout=5.0)

        assert got == [True, False, True]

    def test_interval_between_checks(self):
        """Checks after the first are spaced by the interval."""
        probe = ScriptedProbe([True])
        checker = HealthChecker(probe, interval=0.2).start()
        try:
            checker.events.get(timeout=5.0)
            checker.events.get(timeout=5.0)
        finally:
            checker.close()
            checker.join(timeout=5.0)

        assert probe.calls[1] - probe.calls[0] >= 0.15

    def test_close_stops_loop_and_closes_probe(self):
        """close() wakes the interval wait and the thread exits promptly."""
        probe = ScriptedProbe([True])
        checker = HealthChecker(probe, interval=60.0).start()
        checker.events.get(timeout=5.0)

        started = time.monotonic()
        checker.close()
        assert checker.join(timeout=5.0) is True
        assert time.monotonic() - started < 2.0
        assert probe.closed is True
        assert checker.closed is True

    def test_no_events_after_close(self):
        """A check finishing after close() is dropped, not queued."""
        release = threading.Event()

        class SlowProbe(ScriptedProbe):
            def check(self):
                self.called.set()
                release.wait(5.0)
                return HealthStatus(healthy=True)

        probe = SlowProbe([True])
        checker = HealthChecker(probe, interval=60.0).start()
        assert probe.called.wait(5.0)

        checker.close()
        release.set()
        assert checker.join(timeout=5.0)

        assert checker.events.empty()
        assert checker.checks == 1

    def test_probe_exception_reported_as_unhealthy(self):
        """An unexpected probe error is an unhealthy result, not a dead loop."""
        probe = ScriptedProbe([RuntimeError("boom"), True])
        checker = HealthChecker(probe, interval=0.01).start()
        try:
            assert checker.events.get(timeout=5.0) is False
            assert checker.events.get(timeout=5.0) is True
        finally:
            checker.close()
            checker.join(timeout=5.0)

    def test_start_is_idempotent(self):
        probe = ScriptedProbe([True])
        checker = HealthChecker(probe, interval=60.0)
        checker.start()
        checker.start()
        try:
            checker.events.get(timeout=5.0)
            # One thread, one immediate check
            try:
                checker.events.get(timeout=0.2)
            except queue.Empty:
                pass
            else:
                raise AssertionError("second checker thread was started")
        finally:
            checker.close()
            checker.join(timeout=5.0)
