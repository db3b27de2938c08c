"""Lifecycle states — the four shapes an asynchronous request can be in.

A request is NotStarted, Loading, finished with a Success value, or finished
with a Failure error. States are frozen dataclasses: a transition is a new
instance, never a mutation. Equality is structural.

Pure helpers live here too. They never catch errors raised by caller
functions — catching only happens where RetryableStream runs the operation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, assert_never

T = TypeVar("T")
O = TypeVar("O")
R = TypeVar("R")


class LifecycleState(Generic[T]):
    """Base of the closed set NotStarted | Loading | Success | Failure."""

    __slots__ = ()

    def transform(self, fn: Callable[[T], O]) -> LifecycleState[O]:
        """Map a Success payload through fn; pass other states through.

        fn is called at most once, and never for non-Success states.
        """
        match self:
            case Success(value=value):
                return Success(fn(value))
            case NotStarted():
                return NotStarted()
            case Loading():
                return Loading()
            case Failure(error=error):
                return Failure(error)
            case _:
                assert_never(self)

    def unwrap_or(self, default: T) -> T:
        """The Success payload, else default."""
        if isinstance(self, Success):
            return self.value
        return default

    def unwrap_or_none(self, default: T | None = None) -> T | None:
        """The Success payload, else default (None unless given)."""
        if isinstance(self, Success):
            return self.value
        return default

    @property
    def is_not_started(self) -> bool:
        return isinstance(self, NotStarted)

    @property
    def is_loading(self) -> bool:
        return isinstance(self, Loading)

    @property
    def is_success(self) -> bool:
        return isinstance(self, Success)

    @property
    def is_failure(self) -> bool:
        return isinstance(self, Failure)


@dataclass(frozen=True, slots=True)
class NotStarted(LifecycleState[T]):
    """The request has not begun."""


@dataclass(frozen=True, slots=True)
class Loading(LifecycleState[T]):
    """The request is in flight."""


@dataclass(frozen=True, slots=True)
class Success(LifecycleState[T]):
    """The request finished; value is its result."""

    value: T


@dataclass(frozen=True, slots=True)
class Failure(LifecycleState[T]):
    """The request raised; error is the exception it raised."""

    error: BaseException


def fold(
    state: LifecycleState[T],
    *,
    not_started: Callable[[], R],
    loading: Callable[[], R],
    success: Callable[[T], R],
    failure: Callable[[BaseException], R],
) -> R:
    """Call the one handler matching state and return its result.

    Usage:
        label = fold(
            state,
            not_started=lambda: "idle",
            loading=lambda: "loading...",
            success=lambda user: user.name,
            failure=lambda err: f"error: {err}",
        )
    """
    match state:
        case NotStarted():
            return not_started()
        case Loading():
            return loading()
        case Success(value=value):
            return success(value)
        case Failure(error=error):
            return failure(error)
        case _:
            assert_never(state)
