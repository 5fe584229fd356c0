"""
Unit tests for InactivityMonitor.

Scenarios run with reminder_seconds=5 and max_retries=3 on a fake clock,
driving check() by hand; one test exercises the real polling task.
"""

import asyncio
import json

import pytest

from relay_agent.core.inactivity import (
    DEFAULT_REMINDERS,
    UNRESPONSIVE_REASON,
    InactivityMonitor,
    SilenceState,
)


@pytest.fixture
def monitor(clock):
    return InactivityMonitor(reminder_seconds=5, max_retries=3, clock=clock)


class TestInactivityMonitor:
    """Silence state machine."""

    def test_starts_idle(self, monitor):
        """A new monitor does nothing until started."""
        assert monitor.state is SilenceState.IDLE
        assert monitor.running is False

    @pytest.mark.asyncio
    async def test_no_message_before_threshold(self, monitor, clock):
        """Silence shorter than the threshold produces nothing."""
        sent = []
        monitor.start(sent.append, poll=False)

        clock.advance(4)
        assert await monitor.check() is None
        assert sent == []
        assert monitor.state is SilenceState.ARMED

    @pytest.mark.asyncio
    async def test_two_reminders_then_end(self, monitor, clock):
        """With three retries the caller hears two reminders, then the call ends."""
        sent = []
        monitor.start(sent.append, poll=False)

        clock.advance(5)
        first = await monitor.check()
        assert first == {"type": "text", "token": DEFAULT_REMINDERS[0], "last": True}
        assert monitor.state is SilenceState.WARNING
        assert monitor.retry_count == 1

        clock.advance(4)
        assert await monitor.check() is None

        clock.advance(1)
        second = await monitor.check()
        assert second == {"type": "text", "token": DEFAULT_REMINDERS[1], "last": True}

        clock.advance(5)
        final = await monitor.check()
        assert final["type"] == "end"
        assert json.loads(final["handoffData"]) == {
            "reasonCode": "unresponsive",
            "reason": UNRESPONSIVE_REASON,
        }
        assert monitor.state is SilenceState.TERMINATED
        assert sent == [first, second, final]

    @pytest.mark.asyncio
    async def test_nothing_after_termination(self, monitor, clock):
        """A terminated monitor stays silent."""
        sent = []
        monitor.start(sent.append, poll=False)
        for _ in range(3):
            clock.advance(5)
            await monitor.check()

        clock.advance(50)
        assert await monitor.check() is None
        assert len(sent) == 3

    @pytest.mark.asyncio
    async def test_reset_clears_reminders(self, monitor, clock):
        """Caller activity after a reminder restarts the count from zero."""
        sent = []
        monitor.start(sent.append, poll=False)

        clock.advance(5)
        await monitor.check()
        clock.advance(2)
        monitor.reset()

        assert monitor.state is SilenceState.ARMED
        assert monitor.retry_count == 0

        clock.advance(4)
        assert await monitor.check() is None
        clock.advance(1)
        reminder = await monitor.check()
        assert reminder["token"] == DEFAULT_REMINDERS[0]

    @pytest.mark.asyncio
    async def test_async_callback_awaited(self, monitor, clock):
        """Coroutine callbacks are awaited."""
        sent = []

        async def deliver(message):
            sent.append(message)

        monitor.start(deliver, poll=False)
        clock.advance(5)
        await monitor.check()

        assert len(sent) == 1

    def test_reset_before_start_is_noop(self, monitor):
        """Activity before setup does not arm the monitor."""
        monitor.reset()
        assert monitor.state is SilenceState.IDLE
        assert monitor.last_event_ts is None

    @pytest.mark.asyncio
    async def test_start_twice_keeps_first_callback(self, monitor, clock):
        """A second start() is ignored."""
        first, second = [], []
        monitor.start(first.append, poll=False)
        monitor.start(second.append, poll=False)

        clock.advance(5)
        await monitor.check()

        assert len(first) == 1
        assert second == []

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self, monitor, clock):
        """cleanup() stops the monitor and can be repeated."""
        sent = []
        monitor.start(sent.append, poll=False)

        monitor.cleanup()
        monitor.cleanup()

        assert monitor.state is SilenceState.TERMINATED
        clock.advance(100)
        assert await monitor.check() is None
        assert sent == []

    def test_cleanup_before_start(self, monitor):
        """Cleaning up an unstarted monitor leaves it idle."""
        monitor.cleanup()
        assert monitor.state is SilenceState.IDLE

    def test_rejects_invalid_settings(self):
        """Non-positive thresholds are configuration errors."""
        with pytest.raises(ValueError):
            InactivityMonitor(reminder_seconds=0)
        with pytest.raises(ValueError):
            InactivityMonitor(max_retries=0)

    @pytest.mark.asyncio
    async def test_single_retry_ends_without_reminder(self, clock):
        """max_retries=1 ends the call on the first silence period."""
        monitor = InactivityMonitor(reminder_seconds=5, max_retries=1, clock=clock)
        sent = []
        monitor.start(sent.append, poll=False)
        clock.advance(5)

        message = await monitor.check()

        assert message["type"] == "end"
        assert sent == [message]

    @pytest.mark.asyncio
    async def test_custom_reminders_repeat_last(self, clock):
        """Once the reminder list is exhausted the last one repeats."""
        monitor = InactivityMonitor(reminder_seconds=5, max_retries=4, clock=clock, reminders=["Hello?"])
        sent = []
        monitor.start(sent.append, poll=False)

        for _ in range(3):
            clock.advance(5)
            await monitor.check()

        assert [m["token"] for m in sent] == ["Hello?", "Hello?", "Hello?"]


class TestInactivityPolling:
    """Background polling task."""

    @pytest.mark.asyncio
    async def test_poll_task_ends_call(self):
        """The polling task fires on its own and stops after termination."""
        monitor = InactivityMonitor(reminder_seconds=0.02, max_retries=1, poll_interval=0.01)
        sent = []
        monitor.start(sent.append)

        for _ in range(100):
            if sent:
                break
            await asyncio.sleep(0.01)

        assert len(sent) == 1
        assert sent[0]["type"] == "end"
        assert monitor.state is SilenceState.TERMINATED
        monitor.cleanup()

    @pytest.mark.asyncio
    async def test_poll_survives_callback_failure(self):
        """A failing send is logged and polling continues."""
        monitor = InactivityMonitor(reminder_seconds=0.02, max_retries=3, poll_interval=0.01)
        calls = []

        def flaky(message):
            calls.append(message)
            if len(calls) == 1:
                raise ConnectionError("socket closed")

        monitor.start(flaky)
        for _ in range(200):
            if len(calls) >= 2:
                break
            await asyncio.sleep(0.01)

        assert len(calls) >= 2
        monitor.cleanup()
