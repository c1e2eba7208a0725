"""Observable values feeding the presentation layer."""

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """Holds a value and notifies subscribers of every change in order.

    Subscribers are called synchronously on the thread that applies the
    change, in the order they subscribed.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Replace the value and notify every subscriber."""
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Observer {callback!r} failed: {e}")

    def pulse(self, value: T, reset: T) -> None:
        """Emit a one-shot value, then fall back to the reset value."""
        self.set(value)
        self.set(reset)

    def subscribe(
        self, callback: Callable[[T], None], *, replay: bool = False
    ) -> Callable[[], None]:
        """Register a callback and return a function that unsubscribes it.

        Args:
            callback: Called with the new value on every change
            replay: Also call it immediately with the current value

        Returns:
            Function removing the subscription
        """
        self._subscribers.append(callback)
        if replay:
            callback(self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
