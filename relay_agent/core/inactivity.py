"""
Inactivity monitor: reminds a silent caller, then ends the call.

States: idle -> armed -> warning(n) -> terminated. Elapsed silence is
evaluated on a fixed polling interval rather than with one-shot deadlines,
so repeated resets are just a timestamp update.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Union
import asyncio
import inspect
import time

import structlog

from relay_agent.core.messages import end_call_message, text_token
from relay_agent.metrics import INACTIVITY_EVENTS

logger = structlog.get_logger(__name__)

DEFAULT_REMINDERS = ("Still there?", "Just checking you are still there?")
UNRESPONSIVE_REASON = "The caller was not speaking"

InactivityCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class SilenceState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    WARNING = "warning"
    TERMINATED = "terminated"


class InactivityMonitor:
    """
    Per-session silence state machine.

    Args:
        reminder_seconds: Silence that triggers a reminder (or the termination)
        max_retries: Silence periods before termination; N-1 reminders are sent
        poll_interval: Seconds between checks
        clock: Monotonic time source, injectable for tests
        reminders: Reminder texts; the last one repeats once exhausted
    """

    def __init__(
        self,
        reminder_seconds: float = 20.0,
        max_retries: int = 3,
        poll_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        reminders: Sequence[str] = DEFAULT_REMINDERS,
    ):
        if reminder_seconds <= 0:
            raise ValueError("reminder_seconds must be positive")
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.reminder_seconds = reminder_seconds
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self._clock = clock
        self._reminders = tuple(reminders) or DEFAULT_REMINDERS
        self._callback: Optional[InactivityCallback] = None
        self._task: Optional[asyncio.Task] = None
        self.state = SilenceState.IDLE
        self.retry_count = 0
        self.last_event_ts: Optional[float] = None

    @property
    def running(self) -> bool:
        return self.state in (SilenceState.ARMED, SilenceState.WARNING)

    def start(self, callback: InactivityCallback, *, poll: bool = True) -> None:
        """
        Arm the monitor. With ``poll`` the checks run on a background task in
        the current event loop; without it the caller drives ``check()``.
        """
        if self.state is not SilenceState.IDLE:
            logger.debug("Inactivity monitor already started", state=self.state.value)
            return
        self._callback = callback
        self.last_event_ts = self._clock()
        self.retry_count = 0
        self.state = SilenceState.ARMED
        if poll:
            self._task = asyncio.get_running_loop().create_task(self._poll())
        logger.debug(
            "Inactivity monitor armed",
            reminder_seconds=self.reminder_seconds,
            max_retries=self.max_retries,
        )

    def reset(self) -> None:
        """Qualifying activity: restart the silence clock and clear reminders."""
        if not self.running:
            return
        self.last_event_ts = self._clock()
        self.retry_count = 0
        self.state = SilenceState.ARMED

    async def check(self) -> Optional[Dict[str, Any]]:
        """
        Evaluate elapsed silence once.

        Returns:
            The reminder or termination message emitted, if any
        """
        if not self.running:
            return None
        now = self._clock()
        if now - self.last_event_ts < self.reminder_seconds:
            return None

        self.retry_count += 1
        if self.retry_count >= self.max_retries:
            self.state = SilenceState.TERMINATED
            message = end_call_message("unresponsive", UNRESPONSIVE_REASON)
            INACTIVITY_EVENTS.labels(event="terminated").inc()
            logger.info("Caller unresponsive; ending call", retries=self.retry_count)
        else:
            self.state = SilenceState.WARNING
            reminder = self._reminders[min(self.retry_count - 1, len(self._reminders) - 1)]
            message = text_token(reminder, last=True)
            INACTIVITY_EVENTS.labels(event="reminder").inc()
            logger.info("Caller silent; sending reminder", retry=self.retry_count)
        self.last_event_ts = now

        callback = self._callback
        if callback is not None:
            result = callback(message)
            if inspect.isawaitable(result):
                await result
        if self.state is SilenceState.TERMINATED:
            self._stop_task()
        return message

    async def _poll(self) -> None:
        while self.running:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.check()
            except Exception:
                # keep polling after a failed send
                logger.error("Inactivity callback failed", exc_info=True)

    def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def cleanup(self) -> None:
        """Stop monitoring. Safe to call repeatedly and from any state."""
        self._stop_task()
        self._callback = None
        if self.state is not SilenceState.IDLE:
            self.state = SilenceState.TERMINATED
