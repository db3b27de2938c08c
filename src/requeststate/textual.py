"""Textual integration for requeststate. Opt-in — requires textual.

render_state() turns a LifecycleState into a widget, with stock widgets for
everything but Success. subscribe() bridges cells and retryable streams to
widget updates safely.

// [LAW:single-enforcer] Guard + NoMatches + thread-marshal enforced here, not at callsites.
// [LAW:locality-or-seam] Textual coupling isolated in this module — core requeststate stays agnostic.
// [LAW:no-shared-mutable-globals] _paused_apps has single owner (this module), explicit API
//   (pause/is_safe), documented invariant (id present ↔ inside pause context).
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, TypeVar

from textual.app import ComposeResult
from textual.containers import Vertical
from textual.css.query import NoMatches
from textual.widget import Widget
from textual.widgets import Button, LoadingIndicator, Static

from requeststate.cell import Cell
from requeststate.state import LifecycleState, fold

T = TypeVar("T")

# Module-owned pause state — keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


class ErrorDisplay(Vertical):
    """Shows a failed request's error, with a Retry button when retry is given."""

    DEFAULT_CSS = """
    ErrorDisplay {
        height: auto;
        padding: 1;
    }
    ErrorDisplay > .error-display--message {
        color: $error;
    }
    """

    def __init__(self, error: BaseException, *, retry: Callable[[], None] | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.error = error
        self._retry = retry

    @property
    def can_retry(self) -> bool:
        return self._retry is not None

    def compose(self) -> ComposeResult:
        message = str(self.error) or type(self.error).__name__
        yield Static(message, markup=False, classes="error-display--message")
        if self._retry is not None:
            yield Button("Retry", id="retry", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "retry":
            event.stop()
            self.action_retry()

    def action_retry(self) -> None:
        if self._retry is not None:
            self._retry()


def render_state(
    state: LifecycleState[T],
    success: Callable[[T], Widget],
    *,
    retry: Callable[[], None] | None = None,
    not_started: Callable[[], Widget] | None = None,
    loading: Callable[[], Widget] | None = None,
    failure: Callable[[BaseException], Widget] | None = None,
) -> Widget:
    """Build the widget for state. Only success is required.

    NotStarted and Loading default to a LoadingIndicator; Failure defaults
    to an ErrorDisplay wired to retry (typically a RetryableStream.retry).

    Usage:
        def compose(self):
            yield render_state(self.users.get(), UserList, retry=self.stream.retry)
    """
    return fold(
        state,
        not_started=not_started or LoadingIndicator,
        loading=loading or LoadingIndicator,
        success=success,
        failure=failure or (lambda error: ErrorDisplay(error, retry=retry)),
    )


@contextmanager
def pause(app):
    """Suspend guarded subscriptions during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def subscribe(app, source, effect, *, fire_immediately=False):
    """source.subscribe(effect) that safely bridges to Textual widgets.

    source is a Cell or a RetryableStream. Guards against firing during
    pause/not-running, catches NoMatches from widget queries, and marshals
    cross-thread calls via call_from_thread. fire_immediately (cells only)
    also runs effect with the current value.
    """
    if fire_immediately and not isinstance(source, Cell):
        raise TypeError(
            f"fire_immediately needs a Cell source, got {type(source).__name__}"
        )
    _main = threading.get_ident()

    def _guarded(value):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, value)
        else:
            _safe(value)

    def _safe(value):
        try:
            effect(value)
        except NoMatches:
            pass

    disposer = source.subscribe(_guarded)
    if fire_immediately:
        _guarded(source.get())
    return disposer
