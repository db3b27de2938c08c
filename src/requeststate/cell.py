"""Cells — single observable values, and adapters that publish states into them.

A Cell holds its latest value and notifies subscribers on every set(), with
no de-duplication: derived cells (map, unwrap_or, ...) update exactly once
per source update.

Thread safety: call set_scheduler() once from the main thread. After that,
any .set() from a background thread is auto-marshaled. Main-thread .set()
remains synchronous.

The adapters (bind, handle) only ever write to a cell. Creating it, giving it
its first value (usually NotStarted()) and disposing it is the caller's job.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, AsyncIterator, Callable, Generic, TypeVar

from requeststate.state import Failure, LifecycleState, Loading, Success

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]

logger = logging.getLogger("requeststate.cell")

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread Cell writes.

    Call once from the main/UI thread:
        requeststate.set_scheduler(app.call_from_thread)

    After this, any Cell.set() from a background thread is automatically
    marshaled. Main-thread writes remain synchronous.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread()


class Cell(Generic[T]):
    """A single observable value with latest-value semantics."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: list[Callable[[T], None]] = []
        self._children: list[Cell] = []
        self._disposed = False
        self._parent_disposer: Disposer | None = None

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Write a new value. Auto-marshals from background threads."""
        if _scheduler is not None and threading.current_thread() != _scheduler_thread:
            _scheduler(lambda v=value: self._set_direct(v))
        else:
            self._set_direct(value)

    def _set_direct(self, value: T) -> None:
        """Store and notify. Always runs on the scheduler thread."""
        if self._disposed:
            return
        self._value = value
        for cb in list(self._subscribers):
            cb(value)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback for future values. Returns a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def map(self, fn: Callable[[T], U]) -> Cell[U]:
        """Derived cell holding fn(value), updated on every set of this cell."""
        child: Cell[U] = Cell(fn(self._value))
        unsubscribe = self.subscribe(lambda v: child._set_direct(fn(v)))
        untrack = self._track_child(child)

        def _detach() -> None:
            unsubscribe()
            untrack()

        child._parent_disposer = _detach
        return child

    def map_state(self: Cell[LifecycleState[T]], fn: Callable[[T], U]) -> Cell[LifecycleState[U]]:
        """Derived state cell with Success payloads transformed by fn."""
        return self.map(lambda state: state.transform(fn))

    def unwrap_or(self: Cell[LifecycleState[T]], default: T) -> Cell[T]:
        """Derived cell holding the Success payload, else default."""
        return self.map(lambda state: state.unwrap_or(default))

    def unwrap_or_none(self: Cell[LifecycleState[T]], default: T | None = None) -> Cell[T | None]:
        return self.map(lambda state: state.unwrap_or_none(default))

    def dispose(self) -> None:
        """Tear down this cell and every cell derived from it."""
        self._disposed = True
        self._subscribers.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        if self._parent_disposer is not None:
            self._parent_disposer()
            self._parent_disposer = None

    def _track_child(self, child: Cell) -> Disposer:
        """Register child for dispose propagation. Returns a disposer that removes it."""
        self._children.append(child)

        def _remove() -> None:
            try:
                self._children.remove(child)
            except ValueError:
                pass

        return _remove

    async def __aiter__(self) -> AsyncIterator[T]:
        """Yield the current value, then every later one.

        Lets a cell drive a RetryableStream as its upstream.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[T] = asyncio.Queue()
        loop_thread = threading.get_ident()

        def _enqueue(value: T) -> None:
            if threading.get_ident() == loop_thread:
                queue.put_nowait(value)
            else:
                loop.call_soon_threadsafe(queue.put_nowait, value)

        unsubscribe = self.subscribe(_enqueue)
        try:
            yield self._value
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    def __repr__(self) -> str:
        return f"Cell({self._value!r})"


def bind(stream: Any, cell: Cell[LifecycleState[T]]) -> Disposer:
    """Push every state of a RetryableStream into cell, verbatim.

    Needs a running event loop. Returns a function that stops the binding;
    the cell keeps its last value.

    Usage:
        users = Cell(NotStarted())
        stop = bind(retryable_stream(api.fetch_users), users)
    """
    return stream.subscribe(cell.set)


async def handle(
    cell: Cell[LifecycleState[T]],
    operation: Callable[[], Any],
    *,
    hide_loading: bool = False,
) -> None:
    """Run operation once, publishing Loading then Success or Failure to cell.

    hide_loading=True skips the Loading write, for background refreshes that
    should keep showing the previous value.
    """
    if not hide_loading:
        cell.set(Loading())
    try:
        result = operation()
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        logger.debug("Operation failed: %r", exc)
        cell.set(Failure(exc))
    else:
        cell.set(Success(result))
