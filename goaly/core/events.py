"""Event subscription and debounced scheduling primitives.

``Signal`` replaces ad hoc listener lists: ``connect`` returns a
``Subscription`` whose ``cancel()`` unsubscribes, and a listener that
raises is logged without affecting the emitter or other listeners.

``DebouncedTask`` is a single-slot trailing debounce on the running asyncio
loop: every ``schedule()`` cancels the pending call and starts the delay
again, so a burst of triggers collapses into one run after the burst ends.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Subscription:
    """Handle returned by ``Signal.connect``."""

    def __init__(self, signal: "Signal", listener: Listener):
        self._signal = signal
        self._listener = listener
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._signal._remove(self._listener)
            self.active = False


class Signal:
    """A named event with isolated listeners."""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Listener] = []

    def connect(self, listener: Listener) -> Subscription:
        if not callable(listener):
            raise TypeError(f"Listener for {self.name} must be callable")
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def emit(self, *args: Any, **kwargs: Any) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(*args, **kwargs)
            except Exception as e:
                logger.error(f"Listener for {self.name} failed: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self._listeners)


class DebouncedTask:
    """Run an async callback once, ``delay`` seconds after the last trigger."""

    def __init__(self, callback: Callable[[], Awaitable[Any]], delay: float, name: str = "task"):
        self._callback = callback
        self.delay = delay
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._running: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> bool:
        """Cancel any pending run and schedule a new one.

        Returns False when there is no running event loop (nothing scheduled).
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, {self.name} not scheduled")
            return False

        self.cancel()
        self._handle = loop.call_later(self.delay, self._fire)
        return True

    def cancel(self) -> None:
        """Drop the pending run, if any. An already running callback is not interrupted."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.get_running_loop().create_task(self._run())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Debounced {self.name} failed: {e}", exc_info=True)

    async def drain(self) -> None:
        """Wait for callbacks that have already started."""
        if self._running:
            await asyncio.gather(*list(self._running))
