"""Publish/subscribe value holder used by every live query object."""

from __future__ import annotations

import asyncio
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Generic,
    List,
    Optional,
    TypeVar,
)

from ..utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
U = TypeVar("U")

_UNSET: Any = object()


class Subscription:
    """Handle returned by ``ValueStream.subscribe``.

    Cancelling is synchronous and idempotent: once ``cancel`` returns the
    callback is never called again.
    """

    def __init__(self, stream: "ValueStream[Any]", callback: Callable[[Any], None]) -> None:
        self._stream = stream
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._stream._remove(self)

    def _deliver(self, value: Any) -> None:
        if self._active:
            self._callback(value)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()


class ValueStream(Generic[T]):
    """Current value plus ordered fan-out of every newly published value.

    A stream may start without a value (``has_value`` is False), which is
    how pending state is expressed. Published values should be immutable
    (tuples, frozen models) since every subscriber receives the same object.

    Example:
        >>> stream = ValueStream(0)
        >>> seen = []
        >>> sub = stream.subscribe(seen.append)
        >>> stream.publish(1)
        >>> seen
        [0, 1]
    """

    def __init__(self, initial: Any = _UNSET, name: str = "") -> None:
        self.name = name
        self._value: Any = None if initial is _UNSET else initial
        self._has_value = initial is not _UNSET
        self._subscribers: List[Subscription] = []
        self._close_callbacks: List[Callable[[], None]] = []
        self._closed = False

    @property
    def value(self) -> Optional[T]:
        return self._value

    @property
    def has_value(self) -> bool:
        return self._has_value

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, value: T) -> None:
        if self._closed:
            logger.debug(f"Ignoring publish on closed stream '{self.name}'")
            return
        self._value = value
        self._has_value = True
        for subscription in list(self._subscribers):
            try:
                subscription._deliver(value)
            except Exception as e:
                logger.error(f"Subscriber of stream '{self.name}' failed: {e}", exc_info=True)

    def subscribe(self, callback: Callable[[T], None], replay: bool = True) -> Subscription:
        """Register ``callback``; with ``replay`` it first receives the current value."""
        subscription = Subscription(self, callback)
        if self._closed:
            subscription._active = False
            return subscription
        self._subscribers.append(subscription)
        if replay and self._has_value:
            subscription._deliver(self._value)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def on_close(self, callback: Callable[[], None]) -> None:
        if self._closed:
            callback()
        else:
            self._close_callbacks.append(callback)

    def map(self, fn: Callable[[T], U], name: str = "") -> "ValueStream[U]":
        """Derived stream publishing ``fn(value)`` only when it changes."""
        derived: ValueStream[U] = ValueStream(name=name or f"{self.name}.map")

        def forward(value: T) -> None:
            mapped = fn(value)
            if derived.has_value and derived.value == mapped:
                return
            derived.publish(mapped)

        subscription = self.subscribe(forward)
        derived.on_close(subscription.cancel)
        self.on_close(derived.close)
        return derived

    async def wait_for(
        self,
        predicate: Callable[[T], bool] = lambda value: True,
        timeout: Optional[float] = None,
    ) -> T:
        """Wait until a published value satisfies ``predicate``.

        Raises:
            asyncio.TimeoutError: If no matching value arrives in time.
        """
        if self._has_value and predicate(self._value):
            return self._value
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def check(value: T) -> None:
            if not future.done() and predicate(value):
                future.set_result(value)

        subscription = self.subscribe(check, replay=False)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            subscription.cancel()

    async def values(self) -> AsyncIterator[T]:
        """Iterate the current value and every later one until the stream closes."""
        queue: asyncio.Queue = asyncio.Queue()
        done = object()
        subscription = self.subscribe(queue.put_nowait)
        self.on_close(lambda: queue.put_nowait(done))
        try:
            while True:
                item = await queue.get()
                if item is done:
                    return
                yield item
        finally:
            subscription.cancel()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscribers):
            subscription._active = False
        self._subscribers.clear()
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()

    def __repr__(self) -> str:
        state = repr(self._value) if self._has_value else "<pending>"
        return f"ValueStream({self.name!r}, {state})"
