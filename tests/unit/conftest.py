"""Unit-specific fixtures (no I/O beyond in-memory SQLite and mocked HTTP)."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest
import respx

from storyauthor.cache import CompletionCache
from storyauthor.client import CompletionClient

if TYPE_CHECKING:
    from storyauthor.config import ProviderSettings


@pytest.fixture()
async def cache():
    """In-memory SQLite cache for unit tests."""
    async with aiosqlite.connect(":memory:") as db:
        c = CompletionCache(db)
        await c.init_db()
        await c.load()
        yield c


@pytest.fixture()
def api(provider: ProviderSettings):
    """respx router for the test provider; routes are added per test."""
    with respx.mock(base_url=provider.base_url, assert_all_called=False) as router:
        yield router


@pytest.fixture()
async def client(api: respx.MockRouter, cache: CompletionCache, provider: ProviderSettings):
    async with httpx.AsyncClient() as http:
        yield CompletionClient(http, cache, provider)
