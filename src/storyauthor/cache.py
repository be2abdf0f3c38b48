"""SQLite-persisted completion cache.

The whole table lives in memory and is persisted as a single JSON blob under
one namespace key. It is loaded once at start-up and flushed after every write.

All storage operations catch ``aiosqlite.Error`` internally and degrade
gracefully: a failed or corrupt load yields an empty table, a failed flush is
logged and ignored (the in-memory entry stays valid for the session).
Infrastructure errors never cross the CompletionCache class boundary.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog
from pydantic import ValidationError

from storyauthor.models.cache import CacheEntry, CacheTable

log = structlog.get_logger()

DEFAULT_NAMESPACE = "ai-author-cache"

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class CompletionCache:
    """Fingerprint -> completion text, honored for ``ttl_hours`` after the write."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        ttl_hours: float = 24,
    ) -> None:
        self._db = db
        self._namespace = namespace
        self._ttl = timedelta(hours=ttl_hours)
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def init_db(self) -> None:
        """Create the key/value table. Called once at startup. Non-fatal on failure."""
        try:
            await self._db.execute("PRAGMA journal_mode = WAL")
            await self._db.execute(_CREATE_KV_TABLE)
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_init_error", namespace=self._namespace, exc_info=True)

    async def load(self) -> None:
        """Replace the in-memory table with the persisted one. Non-fatal on failure."""
        self._entries = {}
        try:
            cursor = await self._db.execute(
                "SELECT value FROM kv_store WHERE key = ?", (self._namespace,)
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_load_error", namespace=self._namespace, exc_info=True)
            return

        if row is None:
            return

        try:
            self._entries = CacheTable.validate_json(row[0])
        except ValidationError:
            log.warning("cache_blob_invalid", namespace=self._namespace, exc_info=True)
            return

        log.info("cache_loaded", namespace=self._namespace, entries=len(self._entries))

    # ------------------------------------------------------------------
    # Lookup / write
    # ------------------------------------------------------------------

    def get(self, key: str) -> str | None:
        """Return cached content, or ``None`` when absent or older than the TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if datetime.now(UTC) - entry.timestamp >= self._ttl:
            return None
        return entry.content

    async def put(self, key: str, content: str) -> None:
        """Write an entry and flush the whole table. Non-fatal on flush failure."""
        async with self._lock:
            self._entries[key] = CacheEntry(content=content, timestamp=datetime.now(UTC))
            await self._flush()

    async def clear(self) -> None:
        """Empty the table and remove the persisted blob. Non-fatal on failure."""
        async with self._lock:
            self._entries = {}
            try:
                await self._db.execute("DELETE FROM kv_store WHERE key = ?", (self._namespace,))
                await self._db.commit()
            except aiosqlite.Error:
                log.warning("cache_clear_error", namespace=self._namespace, exc_info=True)

    def size(self) -> int:
        """Number of entries, fresh or stale."""
        return len(self._entries)

    async def _flush(self) -> None:
        blob = CacheTable.dump_json(self._entries).decode("utf-8")
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (self._namespace, blob),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", namespace=self._namespace, exc_info=True)
