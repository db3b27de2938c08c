"""requeststate: lifecycle states and retryable streams for async requests."""

from importlib.metadata import version as _version

__version__ = _version("requeststate")

from requeststate.state import LifecycleState, NotStarted, Loading, Success, Failure, fold
from requeststate.config import RetryConfig
from requeststate.stream import (
    RetryableStream,
    FlatRetryableStream,
    retryable_stream,
    flat_retryable_stream,
    blocking,
)
from requeststate.combinators import map_states, unwrap_states, unwrap_states_or_none
from requeststate.cell import Cell, bind, handle, set_scheduler
# textual NOT auto-imported — opt-in only

__all__ = [
    "LifecycleState",
    "NotStarted",
    "Loading",
    "Success",
    "Failure",
    "fold",
    "RetryConfig",
    "RetryableStream",
    "FlatRetryableStream",
    "retryable_stream",
    "flat_retryable_stream",
    "blocking",
    "map_states",
    "unwrap_states",
    "unwrap_states_or_none",
    "Cell",
    "bind",
    "handle",
    "set_scheduler",
]
