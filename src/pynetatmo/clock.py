"""Timer service used to schedule token refreshes."""

import asyncio
from typing import Any, Callable, Optional, Protocol


class TimerHandle(Protocol):
    """Handle of a scheduled callback."""

    def cancel(self) -> None:
        """Cancel the callback."""


class Clock(Protocol):
    """Schedules one-shot callbacks."""

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` after ``delay`` seconds."""


class LoopClock:
    """Clock backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Initialize the clock, binding to the running loop lazily."""
        self._loop = loop

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        """Schedule ``callback`` on the event loop."""
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback, *args)
