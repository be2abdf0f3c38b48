"""Completion client: atomic and streaming chat completions with caching.

Requests go to an OpenAI-compatible endpoint (``POST {base_url}/chat/completions``).
Successful results are cached by :func:`~storyauthor.fingerprint.fingerprint`.
Atomic completions consult the cache first; streaming completions always open
a connection and only write the cache once the stream has finished.

Outcomes are reported as :class:`CompletionResult` values. HTTP, network and
cancellation failures never escape ``complete()`` as exceptions; call
``result.unwrap()`` to turn a failed result back into one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
import structlog

from storyauthor import __version__
from storyauthor.cancellation import CancellationToken, TokenSlot
from storyauthor.completion_stream import ChunkCallback, CompletionStream
from storyauthor.config import ProviderSettings
from storyauthor.errors import (
    ClientBusyError,
    HttpStatusError,
    NetworkError,
    RequestCancelledError,
    StoryAuthorError,
)
from storyauthor.fingerprint import request_fingerprint
from storyauthor.models.completion import CompletionRequest, CompletionResult
from storyauthor.streaming import ChunkDecoder, StreamDone, StreamEvent

if TYPE_CHECKING:
    from storyauthor.cache import CompletionCache

log = structlog.get_logger()

T = TypeVar("T")


def build_http_client(settings: ProviderSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient used for all provider calls."""
    settings = settings or ProviderSettings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
        headers={"User-Agent": f"storyauthor/{__version__}"},
    )


def _auth_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def extract_message_content(data: Any) -> str:
    """Return ``choices[0].message.content``, or ``""`` when the shape lacks it."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


def _consume_events(events: list[StreamEvent], parts: list[str], emit: ChunkCallback) -> bool:
    """Forward deltas; return True once the end-of-stream sentinel is seen."""
    for event in events:
        if isinstance(event, StreamDone):
            return True
        parts.append(event.text)
        emit(event.text)
    return False


class CompletionClient:
    """Chat completion client bound to one cache and one HTTP client.

    At most one network operation is in flight per client. Starting another
    while one is outstanding yields a ``BUSY`` result instead of silently
    replacing the tracked operation.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CompletionCache,
        provider: ProviderSettings | None = None,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._provider = provider or ProviderSettings()
        self._tokens = TokenSlot()

    @property
    def cache(self) -> CompletionCache:
        return self._cache

    @property
    def provider(self) -> ProviderSettings:
        return self._provider

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_current_request(self) -> bool:
        """Abort the in-flight request, if any. Returns False when idle."""
        return self._tokens.cancel()

    def is_request_in_progress(self) -> bool:
        return self._tokens.is_active()

    async def _run_cancellable(self, token: CancellationToken, operation: Awaitable[T]) -> T:
        task = asyncio.ensure_future(operation)
        token.bind(task)
        try:
            return await task
        except asyncio.CancelledError:
            if token.cancelled:
                raise RequestCancelledError() from None
            raise

    # ------------------------------------------------------------------
    # Atomic completion
    # ------------------------------------------------------------------

    async def complete(
        self,
        request: CompletionRequest,
        *,
        provider: ProviderSettings | None = None,
    ) -> CompletionResult:
        """Return the completion for ``request``, from cache when fresh."""
        key = request_fingerprint(request)
        cached = self._cache.get(key)
        if cached is not None:
            log.debug("completion_cache_hit", fingerprint=key)
            return CompletionResult.success(cached, cached=True)

        try:
            token = self._tokens.acquire()
        except ClientBusyError as exc:
            log.warning("completion_rejected_busy", fingerprint=key)
            return CompletionResult.failure(exc)

        try:
            content = await self._run_cancellable(
                token, self._post_completion(request, provider or self._provider)
            )
        except StoryAuthorError as exc:
            log.warning("completion_failed", fingerprint=key, code=exc.code, error=exc.message)
            return CompletionResult.failure(exc)
        finally:
            self._tokens.release(token)

        await self._cache.put(key, content)
        return CompletionResult.success(content)

    async def _post_completion(self, request: CompletionRequest, provider: ProviderSettings) -> str:
        url = f"{provider.base_url}/chat/completions"
        log.info("completion_request", url=url, model=request.model, messages=len(request.messages))
        try:
            response = await self._http.post(
                url,
                json=request.to_payload(stream=False),
                headers=_auth_headers(provider.api_key_for()),
            )
        except httpx.HTTPError as exc:
            raise NetworkError(f"API request failed: {exc}") from exc

        if not response.is_success:
            raise HttpStatusError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(f"API request failed: invalid JSON body ({exc})") from exc
        return extract_message_content(data)

    # ------------------------------------------------------------------
    # Streaming completion
    # ------------------------------------------------------------------

    def stream(
        self,
        request: CompletionRequest,
        *,
        on_chunk: ChunkCallback | None = None,
        provider: ProviderSettings | None = None,
    ) -> CompletionStream:
        """Start a streaming completion.

        Iterate the returned handle for text chunks; ``await handle.result()``
        gives the final outcome with the full accumulated text. The cache is
        not consulted, only written after a complete stream.
        """
        key = request_fingerprint(request)
        provider = provider or self._provider

        async def body(emit: ChunkCallback) -> str:
            return await self._stream_completion(request, provider, emit)

        async def store(text: str) -> None:
            await self._cache.put(key, text)

        return CompletionStream(body, tokens=self._tokens, on_chunk=on_chunk, on_success=store)

    async def stream_complete(
        self,
        request: CompletionRequest,
        *,
        on_chunk: ChunkCallback | None = None,
        provider: ProviderSettings | None = None,
    ) -> CompletionResult:
        """Run a streaming completion to its end, delivering chunks via ``on_chunk``."""
        return await self.stream(request, on_chunk=on_chunk, provider=provider).result()

    async def send(
        self,
        request: CompletionRequest,
        *,
        on_chunk: ChunkCallback | None = None,
        provider: ProviderSettings | None = None,
    ) -> CompletionResult:
        """Dispatch on ``request.stream``."""
        if request.stream:
            return await self.stream_complete(request, on_chunk=on_chunk, provider=provider)
        return await self.complete(request, provider=provider)

    async def _stream_completion(
        self,
        request: CompletionRequest,
        provider: ProviderSettings,
        emit: ChunkCallback,
    ) -> str:
        url = f"{provider.base_url}/chat/completions"
        log.info("stream_request", url=url, model=request.model, messages=len(request.messages))
        decoder = ChunkDecoder()
        parts: list[str] = []
        try:
            async with self._http.stream(
                "POST",
                url,
                json=request.to_payload(stream=True),
                headers=_auth_headers(provider.api_key_for()),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise HttpStatusError(response.status_code, response.text)

                async for data in response.aiter_bytes():
                    if _consume_events(decoder.feed(data), parts, emit):
                        return "".join(parts)
                _consume_events(decoder.flush(), parts, emit)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Streaming API request failed: {exc}") from exc

        return "".join(parts)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def list_models(self, api_key: str | None = None, base_url: str | None = None) -> list[str]:
        """Return the model identifiers offered by ``GET {base_url}/models``.

        OpenAI-compatible endpoints and OpenRouter share the
        ``{"data": [{"id": ...}]}`` shape.

        Raises:
            HttpStatusError: The endpoint answered with a non-2xx status.
            NetworkError: Transport failure or a body that is not JSON.
        """
        base = (base_url or self._provider.base_url).rstrip("/")
        key = api_key if api_key is not None else self._provider.api_key_for(base)
        try:
            response = await self._http.get(f"{base}/models", headers=_auth_headers(key))
        except httpx.HTTPError as exc:
            raise NetworkError(f"Failed to fetch available models: {exc}") from exc

        if not response.is_success:
            raise HttpStatusError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(f"Failed to fetch available models: {exc}") from exc

        models = data.get("data") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        return [m["id"] for m in models if isinstance(m, dict) and isinstance(m.get("id"), str)]

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    async def clear_cache(self) -> None:
        await self._cache.clear()

    def cache_size(self) -> int:
        return self._cache.size()
