"""One-shot completion signal shared by a stream's terminal event sources.

A stream can end three ways: the protocol layer closes it, the protocol
layer fails, or the client drops the connection. Each source publishes
to the same ``CompletionSignal``; only the first publish counts. The
lifecycle controller awaits the signal once and runs teardown, so the
order in which the sources fire never matters.

States::

    OPEN --publish()--> CLOSING --mark_closed()--> CLOSED
"""

from __future__ import annotations

import asyncio
from enum import Enum


class SessionState(str, Enum):
    """Lifecycle state of a stream session."""

    OPEN = 'open'
    CLOSING = 'closing'
    CLOSED = 'closed'


class TerminalEvent(str, Enum):
    """What ended a stream."""

    CLOSE = 'close'
    ERROR = 'error'
    DISCONNECT = 'disconnect'
    SHUTDOWN = 'shutdown'


class CompletionSignal:
    """First-writer-wins terminal notification for one session."""

    def __init__(self) -> None:
        self._state = SessionState.OPEN
        self._event: TerminalEvent | None = None
        self._error: BaseException | None = None
        self._fired = asyncio.Event()
        self._closed = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SessionState.OPEN

    @property
    def event(self) -> TerminalEvent | None:
        """The terminal event that won, or None while the session is open."""
        return self._event

    @property
    def error(self) -> BaseException | None:
        return self._error

    def publish(self, event: TerminalEvent, error: BaseException | None = None) -> bool:
        """Report a terminal event.

        Returns True if this call moved the session out of OPEN, False if
        another event already did. Safe to call from sync code, including
        ``finally`` blocks of cancelled generators.
        """
        if self._state is not SessionState.OPEN:
            return False
        self._state = SessionState.CLOSING
        self._event = event
        self._error = error
        self._fired.set()
        return True

    def mark_closed(self) -> None:
        """Record that teardown finished. Terminal."""
        if self._state is SessionState.OPEN:
            # Closed without any source publishing (e.g. setup rollback).
            self._event = TerminalEvent.CLOSE
            self._fired.set()
        self._state = SessionState.CLOSED
        self._closed.set()

    async def wait(self) -> TerminalEvent:
        """Block until a terminal event is published and return it."""
        await self._fired.wait()
        assert self._event is not None
        return self._event

    async def wait_closed(self, timeout: float | None = None) -> bool:
        """Wait until teardown finished. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
