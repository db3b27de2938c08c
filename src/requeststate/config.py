"""RetryConfig — per-stream behaviour switches for RetryableStream."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """How a RetryableStream reports and starts its executions.

    emit_loading_on_start: emit Loading when a generation starts (on
        subscription and on every upstream value).
    emit_loading_on_retry: emit Loading when retry() fires.
    defer_until_retry: leave each generation idle until the first retry().
        Useful when a UI element, not the data, decides when to load.
    """

    emit_loading_on_start: bool = True
    emit_loading_on_retry: bool = True
    defer_until_retry: bool = False

    @classmethod
    def from_show_loading(cls, show_loading: bool) -> RetryConfig:
        """Both loading switches set to show_loading, no deferral.

        show_loading=False runs silently in the background.
        """
        return cls(
            emit_loading_on_start=show_loading,
            emit_loading_on_retry=show_loading,
        )
