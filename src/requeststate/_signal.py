"""Conflated retry slot — holds at most one pending retry.

fire() may be called from any thread. Calls on the owning loop's thread set
the slot directly; calls from elsewhere are marshalled onto the loop with
call_soon_threadsafe. Firing an already-set slot is a no-op, so retry
requests never accumulate.
"""

from __future__ import annotations

import asyncio


class RetrySignal:
    """Single-slot, latest-wins retry mailbox bound to one event loop."""

    __slots__ = ("_loop", "_event")

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._event = asyncio.Event()

    @property
    def pending(self) -> bool:
        return self._event.is_set()

    def fire(self) -> None:
        """Mark a retry as pending. Safe from any thread."""
        if self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._event.set()
        else:
            try:
                self._loop.call_soon_threadsafe(self._event.set)
            except RuntimeError:
                # Loop closed after the check above; nothing left to retry.
                return

    def clear(self) -> None:
        """Drop a pending retry without honouring it."""
        self._event.clear()

    async def wait(self) -> None:
        """Wait for a pending retry and take it out of the slot."""
        await self._event.wait()
        self._event.clear()
