"""Debounced value: turns rapidly changing input into a stable value."""

import asyncio
from typing import Callable, Generic, Optional, TypeVar

from recipe_client.utils.config import config
from recipe_client.utils.logger import logger


T = TypeVar("T")


class DebouncedValue(Generic[T]):
    """Stable value updated `delay_ms` after the last observed change.

    Every observe() restarts the timer. Subscribers hear about an emission only
    when the stable value actually changes. After close(), a pending change is
    dropped, never delivered late.
    """

    def __init__(self, initial: T, delay_ms: Optional[int] = None, name: str = "value") -> None:
        self.name = name
        self.delay_ms = config.SEARCH_DEBOUNCE_MS if delay_ms is None else delay_ms
        self._value: T = initial
        self._handle: Optional[asyncio.TimerHandle] = None
        # Bumped on every observe(); a timer only emits if it is still the latest
        self._sequence = 0
        self._listeners: list[Callable[[T], None]] = []
        self._closed = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register a listener for emissions. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def observe(self, value: T, delay_ms: Optional[int] = None) -> None:
        """Record a new raw input value and restart the quiet-period timer.

        Must be called from within a running event loop.
        """
        if self._closed:
            logger.debug(f"Ignoring input for closed debouncer '{self.name}'")
            return

        if self._handle is not None:
            self._handle.cancel()

        self._sequence += 1
        delay = self.delay_ms if delay_ms is None else delay_ms
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay / 1000, self._emit, value, self._sequence)

    def _emit(self, value: T, sequence: int) -> None:
        if self._closed or sequence != self._sequence:
            return
        self._handle = None
        if value == self._value:
            return
        self._value = value
        for listener in list(self._listeners):
            listener(value)

    def close(self) -> None:
        """Tear down: drop any pending change and forget listeners."""
        self._closed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._listeners.clear()
