"""Stream combinators over async iterables of lifecycle states.

Each combinator yields exactly one value per source state, in order, and
lets errors from the caller's function propagate to whoever iterates.
"""

from __future__ import annotations

from typing import AsyncIterable, AsyncIterator, Callable, TypeVar

from requeststate.state import LifecycleState

T = TypeVar("T")
O = TypeVar("O")


async def map_states(
    source: AsyncIterable[LifecycleState[T]],
    fn: Callable[[T], O],
) -> AsyncIterator[LifecycleState[O]]:
    """Transform Success payloads with fn; pass other states through."""
    async for state in source:
        yield state.transform(fn)


async def unwrap_states(
    source: AsyncIterable[LifecycleState[T]],
    default: T,
) -> AsyncIterator[T]:
    """Yield each Success payload, or default for any other state."""
    async for state in source:
        yield state.unwrap_or(default)


async def unwrap_states_or_none(
    source: AsyncIterable[LifecycleState[T]],
    default: T | None = None,
) -> AsyncIterator[T | None]:
    async for state in source:
        yield state.unwrap_or_none(default)
