"""Unit tests for retrying sends and the connection health monitor."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import asyncio

import pytest

from mdtable_editor.transport.channel import ConnectionHealthMonitor, send_with_retry
from mdtable_editor.transport.messages import ErrorMessage


class FlakyChannel:
    """Fails the first ``failures`` sends, then records messages."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.attempts = 0
        self.sent = []

    async def send(self, message: dict) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError(f"send failed ({self.attempts})")
        self.sent.append(message)


class FakeClock:

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


# ===========================================================================
# send_with_retry
# ===========================================================================


class TestSendWithRetry:

    def test_first_attempt(self):
        channel = FlakyChannel()
        asyncio.run(send_with_retry(channel, ErrorMessage(message="x"), max_retries=3))
        assert channel.sent == [{"command": "error", "message": "x"}]
        assert channel.attempts == 1

    def test_succeeds_after_failures(self):
        channel = FlakyChannel(failures=2)
        asyncio.run(send_with_retry(channel, {"command": "ping", "timestamp": 1}, max_retries=3))
        assert channel.attempts == 3
        assert len(channel.sent) == 1

    def test_reraises_last_failure(self):
        channel = FlakyChannel(failures=5)
        with pytest.raises(ConnectionError, match=r"send failed \(3\)"):
            asyncio.run(send_with_retry(channel, ErrorMessage(message="x"), max_retries=3))
        assert channel.attempts == 3

    def test_max_retries_must_be_positive(self):
        with pytest.raises(ValueError):
            asyncio.run(send_with_retry(FlakyChannel(), ErrorMessage(message="x"), max_retries=0))


# ===========================================================================
# ConnectionHealthMonitor
# ===========================================================================


class TestConnectionHealthMonitor:

    def test_register_is_healthy(self):
        clock = FakeClock()
        monitor = ConnectionHealthMonitor(clock=clock)
        monitor.register("a", FlakyChannel())
        health = monitor.get_health("a")
        assert health.is_healthy is True
        assert health.last_activity == 1000.0

    def test_unknown_surface(self):
        assert ConnectionHealthMonitor().get_health("missing") is None

    def test_check_once_pings_everyone(self):
        clock = FakeClock()
        monitor = ConnectionHealthMonitor(timeout=60, clock=clock)
        first, second = FlakyChannel(), FlakyChannel()
        monitor.register("a", first)
        monitor.register("b", second)
        asyncio.run(monitor.check_once())
        assert first.sent == [{"command": "ping", "timestamp": 1000000.0}]
        assert second.sent == first.sent
        assert monitor.get_health("a").is_healthy is True

    def test_silent_surface_marked_unhealthy(self):
        clock = FakeClock()
        monitor = ConnectionHealthMonitor(timeout=60, clock=clock)
        monitor.register("a", FlakyChannel())
        clock.now += 61
        asyncio.run(monitor.check_once())
        assert monitor.get_health("a").is_healthy is False

    def test_pong_restores_health(self):
        clock = FakeClock()
        monitor = ConnectionHealthMonitor(timeout=60, clock=clock)
        monitor.register("a", FlakyChannel())
        clock.now += 61
        asyncio.run(monitor.check_once())
        monitor.handle_pong("a", timestamp=clock.now * 1000, response_time=4.0)
        health = monitor.get_health("a")
        assert health.is_healthy is True
        assert health.last_activity == 1061.0

    def test_failed_ping_marks_unhealthy(self):
        monitor = ConnectionHealthMonitor(max_retries=2, clock=FakeClock())
        channel = FlakyChannel(failures=10)
        monitor.register("a", channel)
        asyncio.run(monitor.check_once())
        assert channel.attempts == 2
        assert monitor.get_health("a").is_healthy is False

    def test_unregister(self):
        monitor = ConnectionHealthMonitor()
        monitor.register("a", FlakyChannel())
        monitor.unregister("a")
        assert monitor.get_health("a") is None

    def test_start_and_stop(self):
        channel = FlakyChannel()
        monitor = ConnectionHealthMonitor(interval=0.01, clock=FakeClock())
        monitor.register("a", channel)

        async def run():
            monitor.start()
            assert monitor.running
            await asyncio.sleep(0.05)
            await monitor.stop()

        asyncio.run(run())
        assert not monitor.running
        assert channel.sent
        assert channel.sent[0]["command"] == "ping"

    def test_stop_when_not_started(self):
        monitor = ConnectionHealthMonitor()
        asyncio.run(monitor.stop())
        assert not monitor.running
