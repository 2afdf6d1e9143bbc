"""Event channels for passive listeners."""

import asyncio
from collections import defaultdict
import logging
from typing import Any, Callable, Dict, List, Set

_LOGGER = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Broadcasts named events to registered listeners.

    Listeners are called in registration order. Coroutine listeners are
    scheduled as tasks on the running loop. A failing listener is logged and
    does not prevent the remaining listeners from running.
    """

    def __init__(self) -> None:
        """Initialize the emitter."""
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``event`` and return an unsubscribe callable."""
        self._listeners[event].append(listener)

        def _unsubscribe() -> None:
            self.off(event, listener)

        return _unsubscribe

    def once(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` to be called on the next ``event`` only."""

        def _wrapper(*args: Any) -> Any:
            self.off(event, _wrapper)
            return listener(*args)

        return self.on(event, _wrapper)

    def off(self, event: str, listener: Listener) -> None:
        """Remove ``listener`` from ``event``; unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        """Return the number of listeners registered for ``event``."""
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of ``event``; return True if there was any."""
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                result = listener(*args)
            except Exception:
                _LOGGER.exception("Error in listener for event '%s'", event)
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._listener_done(event))
        return bool(listeners)

    def _listener_done(self, event: str) -> Callable[[asyncio.Task], None]:
        def _done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if not task.cancelled() and task.exception() is not None:
                _LOGGER.error(
                    "Error in async listener for event '%s'",
                    event,
                    exc_info=task.exception(),
                )

        return _done
