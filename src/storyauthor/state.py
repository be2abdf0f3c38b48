"""Application wiring: settings, storage, HTTP client and completion client."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiosqlite
import httpx
import structlog

from storyauthor.cache import CompletionCache
from storyauthor.client import CompletionClient, build_http_client
from storyauthor.config import Settings

log = structlog.get_logger()


@dataclass
class AppState:
    settings: Settings
    http_client: httpx.AsyncClient
    cache: CompletionCache
    client: CompletionClient


async def _connect(db_path: str) -> aiosqlite.Connection:
    """Open the cache database, falling back to an in-memory one when it cannot be opened."""
    try:
        return await aiosqlite.connect(db_path)
    except aiosqlite.Error:
        log.warning("cache_open_error", db_path=db_path, exc_info=True)
        return await aiosqlite.connect(":memory:")


@asynccontextmanager
async def open_app_state(settings: Settings | None = None) -> AsyncIterator[AppState]:
    """Open the cache database and HTTP client; close both on exit.

    Missing parent directories of ``cache.db_path`` are created. A database
    that cannot be opened or read leaves the client running with an empty cache.
    """
    settings = settings or Settings()
    db_path = settings.cache.db_path
    if db_path != ":memory:":
        db_path = str(Path(db_path).expanduser())
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    db = await _connect(db_path)
    try:
        cache = CompletionCache(
            db,
            namespace=settings.cache.namespace,
            ttl_hours=settings.cache.ttl_hours,
        )
        await cache.init_db()
        await cache.load()

        async with build_http_client(settings.provider) as http_client:
            client = CompletionClient(http_client, cache, settings.provider)
            log.info("client_ready", db_path=db_path, base_url=settings.provider.base_url)
            yield AppState(
                settings=settings,
                http_client=http_client,
                cache=cache,
                client=client,
            )
    finally:
        await db.close()
