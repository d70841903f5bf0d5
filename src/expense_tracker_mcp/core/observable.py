"""
Small reactive primitives used to wire the state core together.

Everything here is meant to be driven from a single asyncio event loop.
Timers fall back to running immediately when no loop is running, so the
primitives stay usable from plain synchronous code and scripts.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Signal(Generic[T]):
    """A list of callbacks invoked with each emitted value."""

    def __init__(self) -> None:
        self._subscribers: List[Callable[[T], None]] = []

    def connect(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Subscribe to the signal.

        Returns:
            A callable that removes the subscription.
        """
        self._subscribers.append(callback)

        def disconnect() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return disconnect

    def emit(self, value: T) -> None:
        for callback in list(self._subscribers):
            callback(value)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class Published(Generic[T]):
    """
    A value holder that notifies subscribers when it is assigned.

    By default assigning an equal value is silent. Channels that must
    re-announce identical values (error messages, mirrored settings) pass
    ``notify_unchanged=True``.
    """

    def __init__(self, value: T, *, notify_unchanged: bool = False) -> None:
        self._value = value
        self._notify_unchanged = notify_unchanged
        self.changed: Signal[T] = Signal()

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, new_value: T) -> None:
        if not self._notify_unchanged and new_value == self._value:
            return
        self._value = new_value
        self.changed.emit(new_value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        return self.changed.connect(callback)


def running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Debouncer:
    """
    Cancel-and-reschedule timer.

    Each ``trigger()`` cancels the pending call and arms a new one, so a burst
    of triggers results in a single callback ``delay`` seconds after the last.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        loop = running_loop()
        if loop is None:
            self._callback()
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def fire_now(self) -> None:
        """Run a pending callback immediately instead of waiting."""
        if self._handle is not None:
            self.cancel()
            self._callback()

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class NotificationCenter:
    """Named-event bus for changes other subsystems react to in batches."""

    def __init__(self) -> None:
        self._observers: Dict[str, List[Callable[[Any], None]]] = defaultdict(list)

    def add_observer(
        self, name: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]:
        self._observers[name].append(callback)

        def remove() -> None:
            if callback in self._observers[name]:
                self._observers[name].remove(callback)

        return remove

    def post(self, name: str, payload: Any = None) -> None:
        logger.debug(f"Posting {name}")
        for callback in list(self._observers[name]):
            callback(payload)

    def post_after(self, delay: float, name: str, payload: Any = None) -> None:
        """Post ``name`` after ``delay`` seconds on the running loop."""
        loop = running_loop()
        if loop is None:
            self.post(name, payload)
            return
        loop.call_later(delay, self.post, name, payload)
