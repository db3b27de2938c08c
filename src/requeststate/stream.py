"""RetryableStream — a restartable, cancelable stream of lifecycle states.

Wraps an operation and an upstream source. Every upstream value starts a
new generation; inside a generation an initial trigger (unless deferred) and
every retry() start a fresh execution of the operation. Starting anything new
cancels the execution in flight, and its results are dropped even if they
were already produced.

Each `async for` is an independent subscription driven by one coroutine, so
states reach the consumer strictly in order. Closing the iterator (or
cancelling the task consuming it) cancels the execution and closes the
upstream. Use contextlib.aclosing when breaking out of the loop early:

    async with aclosing(aiter(stream)) as states:
        async for state in states:
            ...

Two shapes:
- RetryableStream: operation(u) returns one value (or an awaitable of one).
- FlatRetryableStream: operation(u) returns an (async) iterable; every
  element is emitted as its own Success. The execution waits for each
  element to be taken before producing the next, so a slow consumer holds
  it back instead of letting results pile up.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import inspect
import itertools
import logging
from typing import Any, AsyncIterator, Callable, Generic, TypeVar

from requeststate._signal import RetrySignal
from requeststate.config import RetryConfig
from requeststate.state import Failure, LifecycleState, Loading, Success

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]

logger = logging.getLogger("requeststate.stream")

_NO_VALUE = object()


def _open(upstream: Any) -> AsyncIterator:
    """Start observing upstream: an async iterable, an iterable, or a factory of either."""
    if callable(upstream):
        upstream = upstream()
    if hasattr(upstream, "__aiter__"):
        return upstream.__aiter__()
    return _from_iterable(upstream)


async def _from_iterable(items) -> AsyncIterator:
    for item in items:
        yield item


async def _pull(source: AsyncIterator) -> Any:
    return await anext(source)


async def _close(source: AsyncIterator) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


def _superseding(pull: asyncio.Task) -> bool:
    """A finished pull that starts a new generation or ends the stream."""
    if not pull.done():
        return False
    return pull.cancelled() or not isinstance(pull.exception(), StopAsyncIteration)


class RetryableStream(Generic[T]):
    """Async iterable of LifecycleState[T] for an operation that can be retried.

    Usage:
        stream = RetryableStream(fetch_user, upstream=user_ids)

        async for state in stream:
            render(state)

        stream.retry()  # from a button handler, any thread
    """

    def __init__(
        self,
        operation: Callable[[Any], Any],
        upstream: Any = (None,),
        config: RetryConfig | None = None,
    ) -> None:
        self._operation = operation
        self._upstream = upstream
        self._config = config if config is not None else RetryConfig()
        self._signals: set[RetrySignal] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def config(self) -> RetryConfig:
        return self._config

    def retry(self) -> None:
        """Re-run the operation in every active subscription.

        Conflated: retries that arrive before a subscription gets to them
        count once. Dropped when nothing is subscribed. Safe from any thread.
        """
        signals = list(self._signals)
        logger.debug("Retry requested for %d subscription(s)", len(signals))
        for signal in signals:
            signal.fire()

    def subscribe(self, callback: Callable[[LifecycleState[T]], None]) -> Disposer:
        """Consume the stream in a task on the running loop, calling callback per state.

        Returns a function that cancels the subscription. A callback that
        raises is logged and ends its own subscription.
        """
        task = asyncio.get_running_loop().create_task(self._consume(callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        def _dispose() -> None:
            task.cancel()

        return _dispose

    async def _consume(self, callback: Callable[[LifecycleState[T]], None]) -> None:
        async with contextlib.aclosing(self._drive()) as states:
            async for state in states:
                try:
                    callback(state)
                except Exception:
                    logger.exception("Subscriber callback failed, unsubscribing")
                    return

    def __aiter__(self) -> AsyncIterator[LifecycleState[T]]:
        return self._drive()

    async def _execute(self, value: Any) -> AsyncIterator[LifecycleState[T]]:
        """Run the operation once for value, yielding its result states."""
        try:
            result = self._operation(value)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.debug("Operation failed: %r", exc)
            state: LifecycleState[T] = Failure(exc)
        else:
            state = Success(result)
        yield state

    async def _run(self, token: int, value: Any, queue: asyncio.Queue) -> None:
        async for state in self._execute(value):
            # Blocks until the driver takes the previous state.
            await queue.put((token, state))

    async def _drive(self) -> AsyncIterator[LifecycleState[T]]:
        """One subscription: the only place states are yielded from."""
        loop = asyncio.get_running_loop()
        config = self._config
        signal = RetrySignal(loop)
        queue: asyncio.Queue[tuple[int, LifecycleState[T]]] = asyncio.Queue(maxsize=1)
        tokens = itertools.count(1)
        token = 0
        value: Any = _NO_VALUE

        source = _open(self._upstream)
        pull: asyncio.Task | None = loop.create_task(_pull(source))
        execution: asyncio.Task | None = None
        retried: asyncio.Task | None = None
        received: asyncio.Task | None = None
        self._signals.add(signal)

        try:
            while True:
                # Once something supersedes the execution it stops producing;
                # results it already produced still go out first.
                if execution is not None and (
                    (retried is not None and retried.done())
                    or (pull is not None and _superseding(pull))
                ):
                    logger.debug("Execution in flight superseded")
                    execution.cancel()
                    execution = None
                if received is not None and received.done():
                    item_token, state = received.result()
                    received = None
                    if item_token == token:
                        yield state
                    continue
                if not queue.empty():
                    item_token, state = queue.get_nowait()
                    if item_token == token:
                        yield state
                    continue

                if pull is not None and pull.done():
                    outcome, pull = pull, None
                    try:
                        next_value = outcome.result()
                    except StopAsyncIteration:
                        if value is _NO_VALUE:
                            logger.debug("Upstream completed without a value")
                            return
                        continue
                    except Exception as exc:
                        logger.debug("Upstream failed: %r", exc)
                        token = next(tokens)
                        if execution is not None:
                            execution.cancel()
                            execution = None
                        yield Failure(exc)
                        return

                    value = next_value
                    token = next(tokens)
                    if execution is not None:
                        execution.cancel()
                        execution = None
                    signal.clear()
                    if retried is not None and retried.done():
                        retried = None
                    logger.debug("Generation started for %r", value)

                    if not config.defer_until_retry:
                        if config.emit_loading_on_start:
                            yield Loading()
                        execution = loop.create_task(self._run(token, value, queue))
                    pull = loop.create_task(_pull(source))
                    continue

                if retried is not None and retried.done():
                    retried = None
                    token = next(tokens)
                    if execution is not None:
                        execution.cancel()
                        execution = None
                    if config.emit_loading_on_retry:
                        yield Loading()
                    execution = loop.create_task(self._run(token, value, queue))
                    continue

                if value is not _NO_VALUE and retried is None:
                    retried = loop.create_task(signal.wait())
                if received is None:
                    received = loop.create_task(queue.get())
                waiting = [task for task in (pull, retried, received) if task is not None]
                await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._signals.discard(signal)
            for task in (execution, retried, received):
                if task is not None:
                    task.cancel()
            if pull is not None:
                pull.cancel()
                await asyncio.gather(pull, return_exceptions=True)
            await _close(source)


class FlatRetryableStream(RetryableStream[T]):
    """RetryableStream whose operation produces many values per execution.

    operation(u) returns an async iterable or iterable (optionally behind an
    awaitable). Each element becomes a Success, in order; an error while
    producing or iterating becomes one Failure and ends that execution.
    """

    async def _execute(self, value: Any) -> AsyncIterator[LifecycleState[T]]:
        try:
            elements = self._operation(value)
            if inspect.isawaitable(elements):
                elements = await elements
            if hasattr(elements, "__aiter__"):
                async for element in elements:
                    yield Success(element)
            else:
                for element in elements:
                    yield Success(element)
        except Exception as exc:
            logger.debug("Operation failed: %r", exc)
            failure: LifecycleState[T] = Failure(exc)
        else:
            return
        yield failure


def _without_value(operation: Callable[[], Any]) -> Callable[[Any], Any]:
    @functools.wraps(operation)
    def wrapper(_value: Any) -> Any:
        return operation()

    return wrapper


def retryable_stream(
    operation: Callable[..., Any],
    *,
    upstream: Any = None,
    config: RetryConfig | None = None,
    show_loading: bool = True,
) -> RetryableStream:
    """Create a RetryableStream for an operation producing a single value.

    Without upstream, operation takes no arguments and runs once per
    subscription and retry. With upstream, operation receives each value.
    config, when given, wins over show_loading.

    Usage:
        users = retryable_stream(api.fetch_users)
        profile = retryable_stream(api.fetch_profile, upstream=selected_id)
    """
    if config is None:
        config = RetryConfig.from_show_loading(show_loading)
    if upstream is None:
        return RetryableStream(_without_value(operation), (None,), config)
    return RetryableStream(operation, upstream, config)


def flat_retryable_stream(
    operation: Callable[..., Any],
    *,
    upstream: Any = None,
    config: RetryConfig | None = None,
    show_loading: bool = True,
) -> FlatRetryableStream:
    """Create a FlatRetryableStream for an operation producing many values.

    Usage:
        async def ticks():
            for i in range(3):
                yield i

        stream = flat_retryable_stream(ticks)
    """
    if config is None:
        config = RetryConfig.from_show_loading(show_loading)
    if upstream is None:
        return FlatRetryableStream(_without_value(operation), (None,), config)
    return FlatRetryableStream(operation, upstream, config)


def blocking(fn: Callable[..., T], executor=None) -> Callable[..., Any]:
    """Wrap a blocking callable so it runs in an executor instead of the loop.

    executor=None uses the loop's default thread pool. A superseded call
    keeps running in its worker; its result is discarded.

    Usage:
        stream = retryable_stream(blocking(requests_get_users))
    """

    @functools.wraps(fn)
    async def wrapper(*args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, functools.partial(fn, *args))

    return wrapper
