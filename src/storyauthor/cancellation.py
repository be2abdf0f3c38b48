"""Cancellation of in-flight network operations.

A token owns the asyncio task that performs one request. Cancelling the token
cancels that task, which unwinds the httpx request or stream context and
closes the connection. The client tracks at most one token: a second
operation started while one is outstanding is rejected (single-flight).
"""

from __future__ import annotations

import asyncio

import structlog

from storyauthor.errors import ClientBusyError

log = structlog.get_logger()


class CancellationToken:
    def __init__(self) -> None:
        self._task: asyncio.Task | None = None
        self._cancelled = False

    def bind(self, task: asyncio.Task) -> None:
        """Attach the task that performs the network operation."""
        self._task = task
        if self._cancelled:
            task.cancel()

    def finish(self) -> None:
        """Detach from the task; later cancel() calls only set the flag."""
        self._task = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class TokenSlot:
    """Holds the single outstanding token of a client."""

    def __init__(self) -> None:
        self._token: CancellationToken | None = None

    def acquire(self) -> CancellationToken:
        if self._token is not None:
            raise ClientBusyError()
        self._token = CancellationToken()
        return self._token

    def release(self, token: CancellationToken) -> None:
        token.finish()
        if self._token is token:
            self._token = None

    def cancel(self) -> bool:
        """Cancel the outstanding operation. Returns False when idle."""
        token = self._token
        if token is None:
            return False
        log.info("request_cancel_requested")
        token.cancel()
        self._token = None
        return True

    def is_active(self) -> bool:
        return self._token is not None
