"""Observable value cells used to publish derived tracker state.

A ``StateCell`` always holds a value. Subscribers receive the current value as
soon as they attach and every later ``set`` in the order it happened. An
``EventCell`` is a cell whose value is a one-shot signal: it stays pending
(and is replayed to new subscribers) until the consumer acknowledges it, at
which point it goes back to ``None``.
"""

import logging
import math
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Generic, Optional, TypeVar

import anyio
from anyio.abc import ObjectReceiveStream

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class Subscription:
    """Handle returned by ``StateCell.subscribe``; ``close()`` detaches."""

    def __init__(self, cell: "StateCell", callback: Callable) -> None:
        self._cell = cell
        self._callback = callback
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._cell._detach(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class StateCell(Generic[T]):
    """Replay-latest observable value."""

    def __init__(self, initial: T, *, name: str = "") -> None:
        self._value = initial
        self._subscriptions: list[Subscription] = []
        self.name = name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name or '?'}={self._value!r})"

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Store ``value`` and deliver it to every subscriber."""
        self._value = value
        logger.debug("publish %s=%r", self.name or "cell", value)
        # Copy so callbacks may detach themselves while we iterate
        for sub in list(self._subscriptions):
            if not sub.closed:
                sub._callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        """Attach ``callback``; it is called at once with the current value."""
        sub = Subscription(self, callback)
        self._subscriptions.append(sub)
        callback(self._value)
        return sub

    def _detach(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def map(self, fn: Callable[[T], R], *, name: str = "") -> "StateCell[R]":
        """Return a read-only cell holding ``fn(value)``, kept in step with this one."""
        derived: _DerivedCell[R] = _DerivedCell(fn(self._value), name=name)
        derived._source = self
        derived._fn = fn
        # The first call replays the value we just computed
        first = True

        def forward(value: T) -> None:
            nonlocal first
            if first:
                first = False
                return
            derived._publish(fn(value))

        derived._upstream = self.subscribe(forward)
        return derived

    @asynccontextmanager
    async def stream(self) -> AsyncIterator[ObjectReceiveStream[T]]:
        """Yield a receive stream carrying the current value and every later one."""
        send, receive = anyio.create_memory_object_stream(math.inf)
        sub = self.subscribe(send.send_nowait)
        try:
            async with receive:
                yield receive
        finally:
            sub.close()
            send.close()


class _DerivedCell(StateCell[R]):
    _upstream: Subscription | None = None
    _source: StateCell | None = None
    _fn: Callable | None = None

    @property
    def value(self) -> R:
        # Read through while attached so sibling cells never look stale
        # from inside another subscriber's callback
        if self._upstream is not None:
            return self._fn(self._source.value)
        return self._value

    def set(self, value: R) -> None:
        raise TypeError(f"{self!r} is derived and cannot be set directly")

    def _publish(self, value: R) -> None:
        StateCell.set(self, value)

    def detach(self) -> None:
        """Stop following the source cell."""
        if self._upstream is not None:
            self._upstream.close()
            self._upstream = None


class EventCell(StateCell[Optional[T]]):
    """One-shot signal: ``fire`` once, consumer calls ``acknowledge``."""

    def __init__(self, *, name: str = "") -> None:
        super().__init__(None, name=name)

    @property
    def pending(self) -> bool:
        return self._value is not None

    def fire(self, value: T) -> None:
        if value is None:
            raise ValueError("an event value cannot be None")
        self.set(value)

    def acknowledge(self) -> None:
        """Reset to the unset sentinel; no-op if nothing is pending."""
        if self._value is not None:
            self.set(None)
