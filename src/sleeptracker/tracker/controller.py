"""Sleep tracker controller.

Owns the single "tonight" reference, turns start/stop/clear requests into
tasks against a ``SleepStore``, and republishes derived state through
``StateCell``s after every mutation.

Each request runs as its own task inside the controller's task group. By
default those tasks are not serialized against each other, so a slow store
round-trip can finish after a later request. Passing ``serialize=True`` feeds
the requests through a single worker instead, which makes them complete in
call order.
"""

import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from contextvars import ContextVar
from typing import Any

import anyio
from anyio.abc import TaskGroup

from sleeptracker.formatting import format_nights
from sleeptracker.tracker.models import SleepNight, now_millis
from sleeptracker.tracker.state import EventCell, StateCell
from sleeptracker.tracker.store import SleepStore

logger = logging.getLogger(__name__)

Formatter = Callable[[Sequence[SleepNight]], str]

# Controller whose request is running in the current task
_acting_controller: ContextVar["SleepTrackerController | None"] = ContextVar("_acting_controller", default=None)


class PendingOperation:
    """Result handle for a dispatched controller request."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._done = anyio.Event()
        self._result: Any = None
        self._exception: BaseException | None = None
        self.cancelled = False

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "done" if self.done else "pending"
        return f"<PendingOperation {self.name} {state}>"

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def exception(self) -> BaseException | None:
        return self._exception

    async def wait(self) -> Any:
        """Wait for completion; re-raise the operation's error if it failed."""
        await self._done.wait()
        if self.cancelled:
            raise RuntimeError(f"{self.name} was cancelled before it completed")
        if self._exception is not None:
            raise self._exception
        return self._result

    async def _run(self, fn: Callable[[], Awaitable[Any]]) -> None:
        try:
            self._result = await fn()
        except anyio.get_cancelled_exc_class():
            self.cancelled = True
            raise
        except Exception as exc:
            logger.warning("%s failed: %s", self.name, exc)
            self._exception = exc
        finally:
            self._done.set()


class SleepTrackerController:
    """Start, stop and clear sleep nights; publish the resulting state.

    Use as an async context manager. Leaving the block cancels every request
    still in flight; anything a store already committed stays committed.
    """

    def __init__(
        self,
        store: SleepStore,
        *,
        formatter: Formatter = format_nights,
        clock: Callable[[], int] = now_millis,
        serialize: bool = False,
    ) -> None:
        self.store = store
        self.clock = clock
        self.serialize = serialize

        self.tonight: StateCell[SleepNight | None] = StateCell(None, name="tonight")
        self.nights: StateCell[list[SleepNight]] = StateCell([], name="nights")
        self.navigation_event: EventCell[SleepNight] = EventCell(name="navigation_event")

        self.start_enabled = self.tonight.map(lambda night: night is None, name="start_enabled")
        self.stop_enabled = self.tonight.map(lambda night: night is not None, name="stop_enabled")
        self.clear_enabled = self.nights.map(lambda nights: len(nights) > 0, name="clear_enabled")
        self.history_text = self.nights.map(formatter, name="history_text")

        self._task_group: TaskGroup | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._pending: list[PendingOperation] = []
        self._queue_send = None
        self.initialized: PendingOperation | None = None

    async def __aenter__(self) -> "SleepTrackerController":
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        self._unsubscribe = self.store.subscribe(self._on_store_changed)
        if self.serialize:
            self._queue_send, receive = anyio.create_memory_object_stream(math.inf)
            self._task_group.start_soon(self._worker, receive)
        self.initialized = self._dispatch("initialize", self._initialize)
        return self

    async def __aexit__(self, *exc_info) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._queue_send is not None:
            self._queue_send.close()
        self._task_group.cancel_scope.cancel()
        try:
            # Requests never raise; the body's own exception propagates unwrapped
            await self._task_group.__aexit__(None, None, None)
        finally:
            self._task_group = None
            self._queue_send = None
            # Requests cancelled before their task ever ran
            for op in self._pending:
                if not op.done:
                    op.cancelled = True
                    op._done.set()
            self._pending.clear()

    # ── Commands ─────────────────────────────────────────────────

    def start(self) -> PendingOperation:
        """Begin a new night.

        Does not check whether a night is already in progress; a second call
        while one is open creates another open record.
        """
        return self._dispatch("start", self._start)

    def stop(self) -> PendingOperation:
        """Close tonight's night. Does nothing when no night is in progress."""
        return self._dispatch("stop", self._stop)

    def clear(self) -> PendingOperation:
        """Delete every recorded night."""
        return self._dispatch("clear", self._clear)

    def acknowledge_navigation_event(self) -> None:
        self.navigation_event.acknowledge()

    async def wait_idle(self) -> None:
        """Wait until every request dispatched so far has finished."""
        while self._pending:
            op = self._pending[0]
            await op._done.wait()
            if op in self._pending:
                self._pending.remove(op)

    # ── Dispatch ─────────────────────────────────────────────────

    def _dispatch(self, name: str, fn: Callable[[], Awaitable[Any]]) -> PendingOperation:
        if self._task_group is None:
            raise RuntimeError("SleepTrackerController must be entered with 'async with'")
        op = PendingOperation(name)
        self._pending.append(op)
        logger.debug("dispatch %s", name)
        if self._queue_send is not None:
            self._queue_send.send_nowait((op, fn))
        else:
            self._task_group.start_soon(self._run_op, op, fn, name=name)
        return op

    async def _run_op(self, op: PendingOperation, fn: Callable[[], Awaitable[Any]]) -> None:
        token = _acting_controller.set(self)
        try:
            await op._run(fn)
        finally:
            _acting_controller.reset(token)
            if op in self._pending:
                self._pending.remove(op)

    async def _worker(self, receive) -> None:
        async with receive:
            async for op, fn in receive:
                await self._run_op(op, fn)

    # ── Operations ───────────────────────────────────────────────

    async def _get_tonight_from_store(self) -> SleepNight | None:
        night = await self.store.most_recent()
        # A closed most-recent night means the last one already finished
        if night is not None and not night.in_progress:
            return None
        return night

    async def _on_store_changed(self) -> None:
        # Our own requests publish history themselves once they succeed
        if _acting_controller.get() is self or self._task_group is None:
            return
        self._dispatch("refresh", self._refresh_nights)

    async def _refresh_nights(self) -> None:
        self.nights.set(await self.store.all())

    async def _initialize(self) -> SleepNight | None:
        tonight = await self._get_tonight_from_store()
        nights = await self.store.all()
        self.tonight.set(tonight)
        self.nights.set(nights)
        return tonight

    async def _start(self) -> SleepNight | None:
        now = self.clock()
        await self.store.insert(SleepNight(start_time_milli=now, end_time_milli=now))
        tonight = await self._get_tonight_from_store()
        nights = await self.store.all()
        self.tonight.set(tonight)
        self.nights.set(nights)
        return tonight

    async def _stop(self) -> SleepNight | None:
        night = self.tonight.value
        if night is None:
            return None
        closed = night.model_copy()
        # Never equal to the start time, which would read as still open
        closed.end_time_milli = max(self.clock(), night.start_time_milli + 1)
        await self.store.update(closed)
        nights = await self.store.all()
        self.tonight.set(None)
        self.nights.set(nights)
        self.navigation_event.fire(closed)
        return closed

    async def _clear(self) -> None:
        await self.store.clear_all()
        nights = await self.store.all()
        self.tonight.set(None)
        self.nights.set(nights)
