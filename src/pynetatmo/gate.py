"""Holds endpoint calls until the session is authenticated."""

import asyncio
from collections import deque
import logging
from typing import Awaitable, Callable, Deque, Optional, TypeVar

from .const import MAX_PENDING_CALLS
from .exceptions import ApiError, AuthError, Severity
from .models import PendingCall

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class DeferredDispatchGate:
    """Bounded FIFO queue of calls made before authentication completed.

    The gate is open while ``is_open()`` returns True. Calls made while it is
    closed are parked and resumed in arrival order by ``release()``, or
    failed together by ``fail()``.
    """

    def __init__(
        self,
        is_open: Callable[[], bool],
        max_pending: int = MAX_PENDING_CALLS,
        report: Optional[Callable[[ApiError], ApiError]] = None,
    ) -> None:
        """Initialize the gate.

        ``report`` is called with the error raised when the queue is full.
        """
        self._is_open = is_open
        self._max_pending = max_pending
        self._report = report
        self._pending: Deque[PendingCall] = deque()

    @property
    def pending_count(self) -> int:
        """Return the number of parked calls."""
        return len(self._pending)

    async def guard(self, name: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run ``call`` now if the gate is open, otherwise once it opens."""
        if not self._is_open():
            await self._park(name)
        return await call()

    async def _park(self, name: str) -> None:
        if len(self._pending) >= self._max_pending:
            err_msg = (
                f"{name} error: {self._max_pending} calls already waiting "
                "for authentication"
            )
            error = AuthError(err_msg, Severity.WARNING)
            if self._report is not None:
                self._report(error)
            raise error

        pending = PendingCall(name, asyncio.get_running_loop().create_future())
        self._pending.append(pending)
        _LOGGER.debug(
            "Not authenticated yet, deferring %s (%d pending)",
            name,
            len(self._pending),
        )
        try:
            await pending.future
        finally:
            if pending in self._pending:
                self._pending.remove(pending)

    def release(self) -> int:
        """Resume every parked call in FIFO order; return how many."""
        count = 0
        while self._pending:
            pending = self._pending.popleft()
            if not pending.done:
                pending.release()
                count += 1
        if count:
            _LOGGER.debug("Released %d deferred calls", count)
        return count

    def fail(self, error: BaseException) -> int:
        """Fail every parked call with ``error``; return how many."""
        count = 0
        while self._pending:
            pending = self._pending.popleft()
            if not pending.done:
                pending.fail(error)
                count += 1
        if count:
            _LOGGER.debug("Failed %d deferred calls: %s", count, error)
        return count

    def cancel_pending(self) -> int:
        """Cancel every parked call; return how many."""
        count = 0
        while self._pending:
            if self._pending.popleft().cancel():
                count += 1
        return count
