"""Handle for one streaming completion.

The network work runs in a dedicated task that pushes decoded chunks onto a
queue. The handle is a single-consumer async iterator over those chunks and
also exposes the terminal :class:`CompletionResult`. Cancelling the token
cancels the task, which closes the underlying HTTP stream.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from storyauthor.errors import ClientBusyError, RequestCancelledError, StoryAuthorError
from storyauthor.models.completion import CompletionResult

if TYPE_CHECKING:
    from storyauthor.cancellation import CancellationToken, TokenSlot

log = structlog.get_logger()

_STREAM_END = object()

ChunkCallback = Callable[[str], None]
StreamBody = Callable[[ChunkCallback], Awaitable[str]]


class CompletionStream:
    """Async iterator of text chunks plus the final result.

    The request starts on the first iteration step or ``result()`` call, not
    when the handle is created. It can be consumed only once.
    """

    def __init__(
        self,
        body: StreamBody,
        *,
        tokens: TokenSlot,
        on_chunk: ChunkCallback | None = None,
        on_success: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self._body = body
        self._tokens = tokens
        self._on_chunk = on_chunk
        self._on_success = on_success
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._done = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._token: CancellationToken | None = None
        self._started = False
        self._iterated = False
        self._result: CompletionResult | None = None
        self._error: BaseException | None = None

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def __aiter__(self) -> AsyncIterator[str]:
        if self._iterated:
            raise RuntimeError("CompletionStream supports only one consumer")
        self._iterated = True
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[str]:
        self._ensure_started()
        while True:
            item = await self._queue.get()
            if item is _STREAM_END:
                break
            yield item  # type: ignore[misc]
        if self._error is not None:
            raise self._error
        if self._result is not None and self._result.error is not None:
            raise self._result.error

    async def result(self) -> CompletionResult:
        """Wait for the stream to finish and return its outcome."""
        self._ensure_started()
        await self._done.wait()
        if self._error is not None:
            raise self._error
        if self._result is None:
            raise RuntimeError("CompletionStream finished without a result")
        return self._result

    async def cancel(self) -> None:
        """Abort the request and wait until the stream has wound down."""
        if not self._started:
            # Never started: finish without taking a token or opening a connection
            self._started = True
            log.info("stream_cancelled_before_start")
            self._finish(CompletionResult.failure(RequestCancelledError()))
            return
        if self._token is not None:
            self._token.cancel()
            self._tokens.release(self._token)
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def _ensure_started(self) -> None:
        if self._started:
            return
        self._started = True
        try:
            self._token = self._tokens.acquire()
        except ClientBusyError as exc:
            log.warning("stream_rejected_busy")
            self._finish(CompletionResult.failure(exc))
            return
        self._task = asyncio.create_task(self._pump(self._token))
        self._task.add_done_callback(self._on_task_done)
        self._token.bind(self._task)

    def _emit(self, chunk: str) -> None:
        if self._on_chunk is not None:
            self._on_chunk(chunk)
        self._queue.put_nowait(chunk)

    async def _pump(self, token: CancellationToken) -> None:
        result: CompletionResult | None = None
        try:
            text = await self._body(self._emit)
        except asyncio.CancelledError:
            log.info("stream_cancelled")
            result = CompletionResult.failure(RequestCancelledError())
        except StoryAuthorError as exc:
            log.warning("stream_failed", code=exc.code, error=exc.message)
            result = CompletionResult.failure(exc)
        except Exception as exc:
            self._error = exc
        else:
            self._tokens.release(token)
            result = CompletionResult.success(text)
            if self._on_success is not None:
                await self._on_success(text)
        finally:
            self._tokens.release(token)
            self._finish(result)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        # A task cancelled before its first step never reaches _pump's finally
        if not self._done.is_set():
            self._tokens.release(self._token)
            self._finish(CompletionResult.failure(RequestCancelledError()))

    def _finish(self, result: CompletionResult | None) -> None:
        self._result = result
        self._queue.put_nowait(_STREAM_END)
        self._done.set()
